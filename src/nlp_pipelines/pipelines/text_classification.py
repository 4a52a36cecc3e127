"""Text classification pipeline."""

from typing import Any, Dict, Optional

import numpy as np

from ..all_dataclass import TextClassificationConfig
from ..data_processing.dataset_types import PipelineBatch
from ..data_processing.tensor_adapter import extract_rows
from ..models.exceptions import AggregationError, ConfigError
from ..utils.math_utils import AGGREGATION_FUNCTIONS, argmax
from .base import BasePipeline
from .pipeline_dataclasses import ClassificationOutput, TextClassificationOutput

PROBLEM_TYPES = ("single_label", "multi_label")


class TextClassificationPipeline(BasePipeline):
    kind = "text-classification"

    def __init__(
        self,
        *,
        id2label: Dict[int, str],
        config: Optional[TextClassificationConfig] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        config = config or TextClassificationConfig()
        self.id2label = dict(id2label)
        self.aggregation_function = config.aggregation_function.upper()
        self.problem_type = config.problem_type.lower()

    def validate(self) -> None:
        errors = []
        if len(self.output_shape) != 2:
            errors.append("output for text classification must be two dimensional (input, logits)")
        if not self.output_dim or self.output_dim <= 0:
            errors.append("logit dimension cannot be dynamic and must be greater than zero")
        if not self.id2label:
            errors.append("id2label map for text classification pipeline must not be empty")
        elif self.output_dim and len(self.id2label) != self.output_dim:
            errors.append(
                f"id2label map has {len(self.id2label)} labels but the model outputs {self.output_dim} logits"
            )
        if self.aggregation_function not in AGGREGATION_FUNCTIONS:
            errors.append(f"aggregation function {self.aggregation_function} is not supported")
        if self.problem_type not in PROBLEM_TYPES:
            errors.append(f"problem type {self.problem_type} is not recognized")
        if errors:
            raise ConfigError(errors)

    def _label(self, index: int) -> str:
        label = self.id2label.get(index)
        if label is None:
            raise AggregationError(f"class with index {index} not found in id2label map")
        return label

    def postprocess(self, batch: PipelineBatch) -> TextClassificationOutput:
        if batch.size == 0:
            return TextClassificationOutput(classification_outputs=[])

        output = batch.output_tensor(0)
        width = self.output_dim or np.shape(output)[-1]
        normalize = AGGREGATION_FUNCTIONS.get(self.aggregation_function)
        if normalize is None:
            raise ConfigError([f"aggregation function {self.aggregation_function} is not supported"])

        results = []
        for logits in extract_rows(output, batch.size, width):
            scores = normalize(logits)
            if self.problem_type == "multi_label":
                results.append([
                    ClassificationOutput(label=self._label(i), score=float(s))
                    for i, s in enumerate(scores)
                ])
            else:
                index, score = argmax(scores)
                results.append([ClassificationOutput(label=self._label(index), score=score)])
        return TextClassificationOutput(classification_outputs=results)
