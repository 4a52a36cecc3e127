"""Type definitions for inference components."""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import numpy as np

# onnxruntime reports element types as "tensor(<type>)"
ONNX_TYPES = {
    "tensor(int64)": "int64",
    "tensor(int32)": "int32",
    "tensor(float)": "float32",
    "tensor(float16)": "float16",
    "tensor(double)": "float64",
    "tensor(bool)": "bool",
}


@dataclass(frozen=True)
class TensorSpec:
    """Declared name, shape and element type of a model input or output.

    Dynamic dimensions are ``None``.
    """
    name: str
    shape: Tuple[Optional[int], ...]
    dtype: str = "int64"

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def numpy_dtype(self) -> np.dtype:
        return np.dtype(self.dtype)

    @classmethod
    def from_engine(cls, name: str, shape: Any, element_type: str) -> 'TensorSpec':
        """Build a spec from engine metadata, where symbolic or negative dims are dynamic."""
        dims = tuple(
            d if isinstance(d, int) and d >= 0 else None
            for d in (shape or [])
        )
        return cls(name=name, shape=dims, dtype=ONNX_TYPES.get(element_type, element_type))


@dataclass
class EngineSession:
    """A model loaded into an inference engine."""
    model: Any
    inputs: List[TensorSpec] = field(default_factory=list)
    outputs: List[TensorSpec] = field(default_factory=list)
    device: Optional[str] = None
