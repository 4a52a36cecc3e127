"""Module for all configuration dataclasses used by the pipeline runner."""

from dataclasses import dataclass, field
from typing import List, Literal, Optional


PipelineKind = Literal["feature-extraction", "text-classification", "token-classification"]
PIPELINE_KINDS = ("feature-extraction", "text-classification", "token-classification")


@dataclass
class SessionConfig:
    """Configuration for the inference engine shared by all pipelines of a session.

    Selects the backend that executes model graphs and how it is tuned.
    """
    engine: Literal["onnx", "torch"] = "onnx"  # Backend executing the model graph
    engine_library_path: Optional[str] = None   # Shared library loaded into the engine
    intra_op_num_threads: int = 0               # 0 lets the engine decide
    inter_op_num_threads: int = 0               # 0 lets the engine decide
    device: str = "auto"                        # Device for the torch backend ("cpu", "cuda", "auto")


@dataclass
class StreamConfig:
    """Configuration for the streaming execution engine.

    Controls batching, the size of the worker pools and the queue bounds
    that provide backpressure between them.
    """
    batch_size: int = 20        # Records per pipeline call
    process_workers: int = 1    # Threads running batches through the pipeline
    write_workers: int = 1      # Threads draining results and errors
    queue_size: int = 0         # Bound for every queue, 0 means 2 * batch_size
    show_progress: bool = False # Show a progress bar of written records on stderr

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        if self.process_workers <= 0:
            raise ValueError("process_workers must be greater than zero")
        if self.write_workers <= 0:
            raise ValueError("write_workers must be greater than zero")

    @property
    def queue_bound(self) -> int:
        return self.queue_size if self.queue_size > 0 else 2 * self.batch_size


@dataclass
class FeatureExtractionConfig:
    """Options for feature extraction pipelines."""
    normalize: bool = False  # L2-normalize every embedding


@dataclass
class TextClassificationConfig:
    """Options for text classification pipelines."""
    aggregation_function: str = "SOFTMAX"  # SOFTMAX or SIGMOID over the logits
    problem_type: str = "single_label"     # single_label (argmax) or multi_label (all scores)


@dataclass
class TokenClassificationConfig:
    """Options for token classification pipelines."""
    aggregation_strategy: str = "SIMPLE"   # NONE or SIMPLE (BIO grouping)
    ignore_labels: List[str] = field(default_factory=lambda: ["O"])
    aggregation_function: str = "SOFTMAX"  # Normalization applied to per-token logits


@dataclass
class LoggingConfig:
    """Configuration for diagnostics."""
    level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class Config:
    """Complete configuration for a pipeline run.

    Aggregates the engine, streaming, per-kind pipeline and logging
    configurations into a single object.
    """
    session: SessionConfig = field(default_factory=SessionConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    feature_extraction: FeatureExtractionConfig = field(default_factory=FeatureExtractionConfig)
    text_classification: TextClassificationConfig = field(default_factory=TextClassificationConfig)
    token_classification: TokenClassificationConfig = field(default_factory=TokenClassificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
