"""Shared lifecycle of every pipeline kind.

A call moves through Validate -> Preprocess -> Forward -> Postprocess on a
batch owned by that call alone, so one pipeline can serve concurrent callers.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from ..data_processing.dataset_types import PipelineBatch
from ..data_processing.load_tokenizer import Tokenizer, TokenizerOptions
from ..data_processing.tensor_adapter import build_input_tensors
from ..models.exceptions import InferenceError, PipelineError, join_errors
from ..models.inference.inference_dataclasses import EngineSession, TensorSpec
from ..models.inference.model_runner import InferenceEngine
from ..utils.project_logger import get_logger
from ..utils.resource_handle import ResourceHandle
from .pipeline_dataclasses import PipelineTimings


class BasePipeline(ABC):
    """Tokenizer, engine session and timings shared by all pipeline kinds."""

    kind: str = ""

    def __init__(
        self,
        *,
        name: str,
        model_path: str,
        engine: InferenceEngine,
        session_handle: ResourceHandle[EngineSession],
        tokenizer_handle: ResourceHandle[Tokenizer],
        logger: Optional[Any] = None
    ) -> None:
        self.name = name
        self.model_path = model_path
        self.engine = engine
        self.session_handle = session_handle
        self.tokenizer_handle = tokenizer_handle
        self.logger = logger or get_logger(__name__)

        session = session_handle.get()
        self.input_specs: List[TensorSpec] = list(session.inputs)
        self.output_specs: List[TensorSpec] = list(session.outputs)
        self.output_shape = self.output_specs[0].shape if self.output_specs else ()
        self.output_dim: Optional[int] = self.output_shape[-1] if self.output_shape else None

        self.tokenizer_timings = PipelineTimings()
        self.pipeline_timings = PipelineTimings()
        self._destroyed = False

    @property
    def session(self) -> EngineSession:
        return self.session_handle.get()

    @property
    def tokenizer(self) -> Tokenizer:
        return self.tokenizer_handle.get()

    @property
    def tokenizer_options(self) -> TokenizerOptions:
        return TokenizerOptions()

    @abstractmethod
    def validate(self) -> None:
        """Check the configuration against the model.

        Raises:
            ConfigError: listing every violated invariant
        """
        pass

    @abstractmethod
    def postprocess(self, batch: PipelineBatch) -> Any:
        """Turn the batch's output tensors into the kind-specific output."""
        pass

    def preprocess(self, batch: PipelineBatch, inputs: Sequence[str]) -> None:
        """Tokenize every input and build the engine input tensors."""
        start = time.perf_counter_ns()
        errors = []
        tokenized = []
        for text in inputs:
            try:
                tokenized.append(self.tokenizer.encode(text, self.tokenizer_options))
            except PipelineError as e:
                errors.append(e)
        error = join_errors(errors)
        if error is not None:
            raise error

        batch.inputs = tokenized
        batch.max_sequence_length = max((len(t) for t in tokenized), default=0)
        self.tokenizer_timings.record(time.perf_counter_ns() - start)

        batch.input_tensors = build_input_tensors(
            batch.inputs, self.input_specs, batch.max_sequence_length
        )

    def forward(self, batch: PipelineBatch) -> None:
        """Run the batch's input tensors through the inference engine."""
        start = time.perf_counter_ns()
        try:
            outputs = self.engine.run(self.session, batch.input_tensors)
        except Exception as e:
            raise InferenceError(f"inference failed for pipeline {self.name}: {e}") from e
        batch.output_tensors = list(outputs)
        self.pipeline_timings.record(time.perf_counter_ns() - start)

    def run(self, inputs: Sequence[str]) -> Any:
        """Run the full pipeline on a list of strings.

        Args:
            inputs: Raw strings, one output entry is produced per string

        Returns:
            The kind-specific output, in input order
        """
        with PipelineBatch() as batch:
            if inputs:
                self.preprocess(batch, inputs)
                self.forward(batch)
            return self.postprocess(batch)

    def get_stats(self) -> List[str]:
        return [
            f"Statistics for pipeline: {self.name}",
            self.tokenizer_timings.describe("Tokenizer"),
            self.pipeline_timings.describe(f"Inference ({self.engine.name})"),
        ]

    def destroy(self) -> None:
        """Release this pipeline's references to the tokenizer and engine session."""
        if self._destroyed:
            return
        self._destroyed = True
        errors = []
        for handle in (self.tokenizer_handle, self.session_handle):
            try:
                handle.release()
            except Exception as e:
                errors.append(e)
        error = join_errors(errors)
        if error is not None:
            raise error
        self.logger.debug(f"Destroyed pipeline {self.name}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.destroy()
