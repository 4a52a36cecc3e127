"""Type definitions for pipeline outputs and instrumentation."""

import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Entity:
    """A labelled token, or a group of tokens after BIO aggregation.

    ``start`` and ``end`` index into the source string.
    """
    entity: str
    score: float
    index: int = 0
    word: str = ""
    token_id: int = 0
    start: int = 0
    end: int = 0
    is_subword: bool = False
    scores: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        if self.scores is None:
            result.pop("scores")
        return result


@dataclass
class ClassificationOutput:
    """A label and its score."""
    label: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FeatureExtractionOutput:
    """One embedding per input."""
    embeddings: List[List[float]] = field(default_factory=list)

    def get_output(self) -> List[Any]:
        return [list(e) for e in self.embeddings]


@dataclass
class TextClassificationOutput:
    """Classification outputs per input: one for single label, all labels for multi label."""
    classification_outputs: List[List[ClassificationOutput]] = field(default_factory=list)

    def get_output(self) -> List[Any]:
        return [[c.to_dict() for c in outputs] for outputs in self.classification_outputs]


@dataclass
class TokenClassificationOutput:
    """Entities per input."""
    entities: List[List[Entity]] = field(default_factory=list)

    def get_output(self) -> List[Any]:
        return [[e.to_dict() for e in entities] for entities in self.entities]


class PipelineTimings:
    """Running call count and total elapsed nanoseconds.

    Both counters only grow; updates are serialized so concurrent
    pipeline calls never lose an increment.
    """

    def __init__(self) -> None:
        self.num_calls = 0
        self.total_ns = 0
        self._lock = threading.Lock()

    def record(self, elapsed_ns: int) -> None:
        with self._lock:
            self.num_calls += 1
            self.total_ns += max(0, int(elapsed_ns))

    @property
    def average_ns(self) -> float:
        with self._lock:
            return self.total_ns / self.num_calls if self.num_calls else 0.0

    def describe(self, label: str) -> str:
        return (
            f"{label}: Total time={self.total_ns / 1e6:.3f}ms, "
            f"Execution count={self.num_calls}, "
            f"Average query time={self.average_ns / 1e6:.3f}ms"
        )
