"""Transformer pipelines (feature extraction, text and token classification) with a streaming runner."""

from .all_dataclass import (
    Config,
    FeatureExtractionConfig,
    SessionConfig,
    StreamConfig,
    TextClassificationConfig,
    TokenClassificationConfig,
)
from .models.exceptions import (
    AggregationError,
    CombinedError,
    ConfigError,
    InferenceError,
    InputOutputError,
    PipelineError,
    ShapeError,
)
from .session import Session
from .streaming.driver import StreamDriver, StreamSummary

__version__ = "0.1.0"

__all__ = [
    "AggregationError",
    "CombinedError",
    "Config",
    "ConfigError",
    "FeatureExtractionConfig",
    "InferenceError",
    "InputOutputError",
    "PipelineError",
    "Session",
    "SessionConfig",
    "ShapeError",
    "StreamConfig",
    "StreamDriver",
    "StreamSummary",
    "TextClassificationConfig",
    "TokenClassificationConfig",
]
