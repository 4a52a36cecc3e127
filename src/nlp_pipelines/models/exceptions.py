"""Custom exceptions for the pipeline execution engine."""

from typing import List, Optional, Sequence


class PipelineError(Exception):
    """Base class for pipeline-specific errors."""
    pass


class ConfigError(PipelineError):
    """Raised when a pipeline is misconfigured.

    Carries every violation found, not just the first one.
    """

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors))


class ShapeError(PipelineError):
    """Raised when tensors or tokenized inputs have inconsistent shapes."""
    pass


class InferenceError(PipelineError):
    """Raised when the inference engine fails to run a batch."""
    pass


class AggregationError(PipelineError):
    """Raised when model outputs cannot be mapped to labels."""
    pass


class InputOutputError(PipelineError):
    """Raised when an input record or file cannot be read or written."""
    pass


class CombinedError(PipelineError):
    """Several errors raised by one operation, reported together."""

    def __init__(self, errors: Sequence[BaseException]):
        self.errors: List[BaseException] = list(errors)
        super().__init__("\n".join(str(e) for e in self.errors))


def join_errors(errors: Sequence[Optional[BaseException]]) -> Optional[BaseException]:
    """Collapse a list of errors into a single exception.

    Args:
        errors: Errors collected by an operation, ``None`` entries are ignored.

    Returns:
        None when there is nothing to report, the error itself when there is
        exactly one, otherwise a CombinedError holding all of them.
    """
    found = [e for e in errors if e is not None]
    if not found:
        return None
    if len(found) == 1:
        return found[0]
    return CombinedError(found)
