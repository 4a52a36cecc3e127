"""Shared fixtures: a whitespace tokenizer and a scriptable inference engine.

Nothing here downloads a model; the engine's "model" is a function of the
input tensors.
"""

import json
import logging
import re
import threading
from typing import Callable, Dict, List, Optional

import numpy as np
import pytest

from nlp_pipelines.all_dataclass import Config
from nlp_pipelines.data_processing.dataset_types import TokenizedInput
from nlp_pipelines.data_processing.load_tokenizer import TokenizerOptions
from nlp_pipelines.models.exceptions import ShapeError
from nlp_pipelines.models.inference.inference_dataclasses import EngineSession, TensorSpec
from nlp_pipelines.models.inference.model_runner import InferenceEngine
from nlp_pipelines.session import Session
from nlp_pipelines.utils.project_logger import LOGGER_NAME

PAD_VALUE = 100.0


class FakeTokenizer:
    """Whitespace tokenizer adding [CLS]/[SEP].

    Words listed in ``split_words`` are split after their fourth character
    into a word piece and a "##" continuation.
    """

    def __init__(self, split_words: Optional[List[str]] = None) -> None:
        self.split_words = set(split_words or [])
        self.vocab: Dict[str, int] = {"[PAD]": 0, "[CLS]": 101, "[SEP]": 102}
        self.id_to_token: Dict[int, str] = {v: k for k, v in self.vocab.items()}
        self.destroyed = False
        self.fail_on: Optional[str] = None
        self._lock = threading.Lock()

    def token_id(self, token: str) -> int:
        with self._lock:
            if token not in self.vocab:
                new_id = 1000 + len(self.vocab)
                self.vocab[token] = new_id
                self.id_to_token[new_id] = token
            return self.vocab[token]

    def encode(self, text: str, options: TokenizerOptions) -> TokenizedInput:
        if self.fail_on is not None and self.fail_on in text:
            raise ShapeError(f"cannot tokenize {text!r}")
        pieces = [("[CLS]", 0, 0, 1)]
        for match in re.finditer(r"\S+", text):
            word, start, end = match.group(), match.start(), match.end()
            if word in self.split_words:
                pieces.append((word[:4], start, start + 4, 0))
                pieces.append(("##" + word[4:], start + 4, end, 0))
            else:
                pieces.append((word, start, end, 0))
        pieces.append(("[SEP]", 0, 0, 1))
        return TokenizedInput(
            raw=text,
            tokens=[p[0] for p in pieces],
            token_ids=[self.token_id(p[0]) for p in pieces],
            offsets=[(p[1], p[2]) for p in pieces],
            special_tokens_mask=[p[3] for p in pieces],
        )

    def decode(self, token_ids: List[int], skip_special_tokens: bool = False) -> str:
        words: List[str] = []
        for token_id in token_ids:
            token = self.id_to_token[token_id]
            if skip_special_tokens and token.startswith("["):
                continue
            if token.startswith("##") and words:
                words[-1] += token[2:]
            else:
                words.append(token)
        return " ".join(words)

    def destroy(self) -> None:
        self.destroyed = True


class FakeEngine(InferenceEngine):
    """Engine whose model is ``forward(inputs) -> outputs``."""

    name = "fake"
    model_suffix = ".onnx"

    def __init__(
        self,
        forward: Callable[[Dict[str, np.ndarray]], List[np.ndarray]],
        output_specs: List[TensorSpec],
        input_specs: Optional[List[TensorSpec]] = None
    ) -> None:
        self.forward = forward
        self.output_specs = output_specs
        self.input_specs = input_specs or [
            TensorSpec("input_ids", (None, None)),
            TensorSpec("attention_mask", (None, None)),
        ]
        self.loaded: List[bytes] = []
        self.destroyed: List[EngineSession] = []
        self.calls: List[Dict[str, np.ndarray]] = []

    def load(self, model_bytes: bytes) -> EngineSession:
        self.loaded.append(model_bytes)
        return EngineSession(model=model_bytes, inputs=list(self.input_specs), outputs=list(self.output_specs))

    def run(self, session: EngineSession, inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        self.calls.append(inputs)
        return self.forward(inputs)

    def destroy(self, session: EngineSession) -> None:
        self.destroyed.append(session)


def token_label_forward(tokenizer: FakeTokenizer, word_labels: Dict[str, int], num_labels: int):
    """Per-token logits putting 5.0 on the label of each token's word; padding gets noise."""
    def forward(inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        ids, mask = inputs["input_ids"], inputs["attention_mask"]
        logits = np.zeros(ids.shape + (num_labels,), dtype=np.float32)
        for b in range(ids.shape[0]):
            for s in range(ids.shape[1]):
                if not mask[b, s]:
                    logits[b, s, -1] = PAD_VALUE
                    continue
                token = tokenizer.id_to_token[int(ids[b, s])]
                logits[b, s, word_labels.get(token, 0)] = 5.0
        return [logits]
    return forward


def sentiment_forward(tokenizer: FakeTokenizer):
    """Two logits per input: POSITIVE when the word "good" occurs, else NEGATIVE."""
    def forward(inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        ids = inputs["input_ids"]
        rows = []
        for row in ids:
            tokens = {tokenizer.id_to_token[int(i)] for i in row}
            rows.append([0.0, 3.0] if "good" in tokens else [3.0, 0.0])
        return [np.array(rows, dtype=np.float32)]
    return forward


def embedding_forward(dim: int = 4):
    """Token embeddings derived from the token id alone; padding positions get noise."""
    def forward(inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        ids, mask = inputs["input_ids"], inputs["attention_mask"]
        out = np.zeros(ids.shape + (dim,), dtype=np.float32)
        for d in range(dim):
            out[..., d] = (ids % (d + 7)).astype(np.float32)
        out[mask == 0] = PAD_VALUE
        return [out]
    return forward


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo setup_logger so handlers never outlive the captured streams of one test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def tokenizer():
    return FakeTokenizer(split_words=["Hamburg"])


def write_model_dir(path, id2label: Optional[Dict[int, str]] = None, model_files=("model.onnx",)):
    path.mkdir(parents=True, exist_ok=True)
    for name in model_files:
        (path / name).write_bytes(b"fake-model")
    if id2label is not None:
        (path / "config.json").write_text(
            json.dumps({"id2label": {str(k): v for k, v in id2label.items()}})
        )
    return path


NER_LABELS = {0: "O", 1: "B-PER", 2: "I-PER", 3: "B-LOC", 4: "I-LOC"}
SENTIMENT_LABELS = {0: "NEGATIVE", 1: "POSITIVE"}


@pytest.fixture
def ner_model_dir(tmp_path):
    return write_model_dir(tmp_path / "ner", NER_LABELS)


@pytest.fixture
def sentiment_model_dir(tmp_path):
    return write_model_dir(tmp_path / "sentiment", SENTIMENT_LABELS)


@pytest.fixture
def embedding_model_dir(tmp_path):
    return write_model_dir(tmp_path / "embedding")


def make_session(engine: InferenceEngine, tokenizer: FakeTokenizer, config: Optional[Config] = None) -> Session:
    return Session(config or Config(), engine=engine, tokenizer_loader=lambda path, logger: tokenizer)


@pytest.fixture
def ner_engine(tokenizer):
    word_labels = {"John": 1, "Smith": 2, "Hamb": 3, "##urg": 4, "Paris": 3}
    return FakeEngine(
        token_label_forward(tokenizer, word_labels, len(NER_LABELS)),
        [TensorSpec("logits", (None, None, len(NER_LABELS)), "float32")],
    )


@pytest.fixture
def sentiment_engine(tokenizer):
    return FakeEngine(sentiment_forward(tokenizer), [TensorSpec("logits", (None, 2), "float32")])


@pytest.fixture
def embedding_engine():
    return FakeEngine(embedding_forward(4), [TensorSpec("last_hidden_state", (None, None, 4), "float32")])
