"""Tokenizer loading and encoding."""

from dataclasses import dataclass
from typing import Any, List, Optional

from transformers import AutoTokenizer, PreTrainedTokenizerBase

from ..models.exceptions import ConfigError, ShapeError
from .dataset_types import TokenizedInput


@dataclass(frozen=True)
class TokenizerOptions:
    """Encoding options, fixed per pipeline instance."""
    add_special_tokens: bool = True
    return_offsets: bool = True
    return_special_tokens_mask: bool = True
    return_type_ids: bool = True
    truncation: bool = True
    max_length: Optional[int] = None


class Tokenizer:
    """Wraps a fast Hugging Face tokenizer behind encode/decode/destroy."""

    def __init__(self, tokenizer: PreTrainedTokenizerBase) -> None:
        if not getattr(tokenizer, "is_fast", False):
            raise ConfigError([
                f"tokenizer {type(tokenizer).__name__} is not a fast tokenizer, offsets are unavailable"
            ])
        self.tokenizer = tokenizer

    @property
    def model_max_length(self) -> Optional[int]:
        max_length = getattr(self.tokenizer, "model_max_length", None)
        # transformers uses a huge sentinel when the limit is unknown
        if max_length is None or max_length > 1_000_000:
            return None
        return int(max_length)

    def encode(self, text: str, options: TokenizerOptions) -> TokenizedInput:
        """Tokenize one string into a TokenizedInput."""
        max_length = options.max_length or self.model_max_length
        try:
            encoding = self.tokenizer(
                text,
                add_special_tokens=options.add_special_tokens,
                return_offsets_mapping=options.return_offsets,
                return_special_tokens_mask=options.return_special_tokens_mask,
                return_token_type_ids=options.return_type_ids,
                return_attention_mask=True,
                truncation=options.truncation and max_length is not None,
                max_length=max_length,
            )
        except ValueError as e:
            raise ShapeError(f"Tokenization value error: {str(e)}") from e

        token_ids = list(encoding["input_ids"])
        n = len(token_ids)
        offsets = encoding.get("offset_mapping") or [(0, 0)] * n
        return TokenizedInput(
            raw=text,
            tokens=self.tokenizer.convert_ids_to_tokens(token_ids),
            token_ids=token_ids,
            offsets=[tuple(o) for o in offsets],
            special_tokens_mask=list(encoding.get("special_tokens_mask") or [0] * n),
            attention_mask=list(encoding.get("attention_mask") or [1] * n),
            type_ids=list(encoding.get("token_type_ids") or [0] * n),
        )

    def decode(self, token_ids: List[int], skip_special_tokens: bool = False) -> str:
        """Decode token ids back to text."""
        return self.tokenizer.decode(token_ids, skip_special_tokens=skip_special_tokens)

    def destroy(self) -> None:
        self.tokenizer = None


def load_tokenizer(
    model_path: str,
    logger: Any
) -> Tokenizer:
    """Load the tokenizer stored next to a model.

    Args:
        model_path: Local directory holding the tokenizer files.
        logger: Logger instance for logging.

    Returns:
        Tokenizer: The loaded tokenizer.
    """
    logger.info(f"Loading tokenizer: {model_path}.")
    try:
        return Tokenizer(AutoTokenizer.from_pretrained(model_path, use_fast=True))
    except (OSError, ValueError) as e:
        raise ConfigError([f"could not load tokenizer from {model_path}: {e}"]) from e
