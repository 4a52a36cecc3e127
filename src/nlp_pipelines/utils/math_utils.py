"""Numeric helpers shared by the postprocessors."""

from typing import Callable, Dict, Sequence, Tuple

import numpy as np


def softmax(logits: np.ndarray) -> np.ndarray:
    shifted = np.asarray(logits, dtype=np.float32) - np.max(logits)
    exp = np.exp(shifted)
    return exp / exp.sum()


def sigmoid(logits: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.asarray(logits, dtype=np.float32)))


AGGREGATION_FUNCTIONS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "SOFTMAX": softmax,
    "SIGMOID": sigmoid,
}


def argmax(scores: Sequence[float]) -> Tuple[int, float]:
    """Index and value of the largest score, first one wins on ties."""
    if len(scores) == 0:
        raise ValueError("cannot take argmax of an empty vector")
    index = int(np.argmax(scores))
    return index, float(scores[index])


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm
