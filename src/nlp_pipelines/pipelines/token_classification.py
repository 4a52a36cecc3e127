"""Token classification (named entity recognition) pipeline."""

from typing import Any, Dict, Optional

import numpy as np

from ..all_dataclass import TokenClassificationConfig
from ..data_processing.dataset_types import PipelineBatch
from ..data_processing.load_tokenizer import TokenizerOptions
from ..data_processing.tensor_adapter import extract_logits
from ..models.exceptions import ConfigError
from ..utils.math_utils import AGGREGATION_FUNCTIONS
from .aggregation import AGGREGATION_STRATEGIES, aggregate
from .base import BasePipeline
from .pipeline_dataclasses import TokenClassificationOutput


class TokenClassificationPipeline(BasePipeline):
    """Labels every token and optionally groups them into entity spans."""

    kind = "token-classification"

    def __init__(
        self,
        *,
        id2label: Dict[int, str],
        config: Optional[TokenClassificationConfig] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        config = config or TokenClassificationConfig()
        self.id2label = dict(id2label)
        self.aggregation_strategy = config.aggregation_strategy.upper()
        self.aggregation_function = config.aggregation_function.upper()
        self.ignore_labels = set(config.ignore_labels)

    @property
    def tokenizer_options(self) -> TokenizerOptions:
        return TokenizerOptions(return_offsets=True, return_special_tokens_mask=True)

    def validate(self) -> None:
        errors = []
        if len(self.output_shape) != 3:
            errors.append(
                "output for token classification must be three dimensional (input, sequence, logits)"
            )
        if not self.output_dim or self.output_dim <= 0:
            errors.append("logit dimension cannot be dynamic and must be greater than zero")
        if not self.id2label:
            errors.append("id2label map for token classification pipeline must not be empty")
        elif self.output_dim and len(self.id2label) != self.output_dim:
            errors.append(
                f"id2label map has {len(self.id2label)} labels but the model outputs {self.output_dim} logits"
            )
        if self.aggregation_strategy not in AGGREGATION_STRATEGIES:
            errors.append(f"aggregation strategy {self.aggregation_strategy} is not implemented")
        if self.aggregation_function not in AGGREGATION_FUNCTIONS:
            errors.append(f"aggregation function {self.aggregation_function} is not supported")
        if errors:
            raise ConfigError(errors)

    def postprocess(self, batch: PipelineBatch) -> TokenClassificationOutput:
        if batch.size == 0:
            return TokenClassificationOutput(entities=[])

        output = batch.output_tensor(0)
        width = self.output_dim or np.shape(output)[-1]
        token_scores = extract_logits(
            output, batch.size, batch.max_sequence_length, width, batch.token_counts
        )
        normalize = AGGREGATION_FUNCTIONS.get(self.aggregation_function)
        if normalize is None:
            raise ConfigError([f"aggregation function {self.aggregation_function} is not supported"])

        entities = []
        for tokenized, logits in zip(batch.inputs, token_scores):
            probabilities = [normalize(vector) for vector in logits]
            entities.append(aggregate(
                tokenized,
                probabilities,
                id2label=self.id2label,
                strategy=self.aggregation_strategy,
                ignore_labels=self.ignore_labels,
                tokenizer=self.tokenizer,
            ))
        return TokenClassificationOutput(entities=entities)
