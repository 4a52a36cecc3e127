"""Data container classes for batch processing."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..models.exceptions import CombinedError, ShapeError
from ..utils.project_logger import get_logger

logger = get_logger(__name__)


@dataclass
class TokenizedInput:
    """One raw string and its tokenization.

    ``tokens``, ``token_ids``, ``offsets``, ``special_tokens_mask``,
    ``attention_mask`` and ``type_ids`` are parallel: entry ``j`` of each
    describes token ``j``. Offsets index into ``raw``.
    """
    raw: str
    tokens: List[str]
    token_ids: List[int]
    offsets: List[Tuple[int, int]]
    special_tokens_mask: List[int]
    attention_mask: List[int] = field(default_factory=list)
    type_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        n = len(self.tokens)
        if not self.attention_mask:
            self.attention_mask = [1] * n
        if not self.type_ids:
            self.type_ids = [0] * n
        lengths = {
            "token_ids": len(self.token_ids),
            "offsets": len(self.offsets),
            "special_tokens_mask": len(self.special_tokens_mask),
            "attention_mask": len(self.attention_mask),
            "type_ids": len(self.type_ids),
        }
        mismatched = [f"{k}={v}" for k, v in lengths.items() if v != n]
        if mismatched:
            raise ShapeError(
                f"tokenized input has {n} tokens but {', '.join(mismatched)}"
            )
        # special tokens carry (0, 0) offsets and are left out of the ordering check
        previous_start = 0
        for (start, end), special in zip(self.offsets, self.special_tokens_mask):
            if start < 0 or start > end or end > len(self.raw):
                raise ShapeError(
                    f"invalid offset ({start}, {end}) for input of length {len(self.raw)}"
                )
            if special:
                continue
            if start < previous_start:
                raise ShapeError(f"offsets are not ordered at ({start}, {end})")
            previous_start = start

    def __len__(self) -> int:
        return len(self.tokens)


@dataclass
class PipelineBatch:
    """Working state of a single pipeline call.

    Created per call, destroyed once postprocessing has read it. Use it as a
    context manager so the tensors are released on every exit path.
    """
    inputs: List[TokenizedInput] = field(default_factory=list)
    max_sequence_length: int = 0
    input_tensors: Dict[str, np.ndarray] = field(default_factory=dict)
    output_tensors: List[np.ndarray] = field(default_factory=list)
    destroyed: bool = False

    @property
    def size(self) -> int:
        return len(self.inputs)

    @property
    def token_counts(self) -> List[int]:
        return [len(i) for i in self.inputs]

    def output_tensor(self, index: int = 0) -> Optional[np.ndarray]:
        if index >= len(self.output_tensors):
            return None
        return self.output_tensors[index]

    def destroy(self) -> None:
        """Release the tensors held by the batch. Safe to call twice."""
        if self.destroyed:
            return
        self.input_tensors.clear()
        self.output_tensors.clear()
        self.destroyed = True

    def __enter__(self) -> 'PipelineBatch':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.destroy()
        except Exception as destroy_error:
            if exc_val is None:
                raise
            logger.error(f"Failed to destroy batch after error: {destroy_error}")
            raise CombinedError([exc_val, destroy_error]) from exc_val
        return False
