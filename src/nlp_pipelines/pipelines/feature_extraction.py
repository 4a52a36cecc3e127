"""Feature extraction (embedding) pipeline."""

from typing import Any, Optional

import numpy as np

from ..all_dataclass import FeatureExtractionConfig
from ..data_processing.dataset_types import PipelineBatch
from ..data_processing.tensor_adapter import extract_logits, extract_rows
from ..models.exceptions import ConfigError, ShapeError
from ..utils.math_utils import l2_normalize
from .base import BasePipeline
from .pipeline_dataclasses import FeatureExtractionOutput


class FeatureExtractionPipeline(BasePipeline):
    """Returns one embedding per input.

    Token embeddings (``batch x sequence x dim``) are mean pooled over the
    input's real tokens, so padding added for longer batch mates never
    changes an input's embedding. Pooled outputs (``batch x dim``) are
    returned as they come.
    """

    kind = "feature-extraction"

    def __init__(
        self,
        *,
        config: Optional[FeatureExtractionConfig] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        config = config or FeatureExtractionConfig()
        self.normalize = config.normalize

    def validate(self) -> None:
        errors = []
        if len(self.output_shape) not in (2, 3):
            errors.append(
                "output for feature extraction must be two or three dimensional, "
                f"got {len(self.output_shape)} dimensions"
            )
        if not self.output_dim or self.output_dim <= 0:
            errors.append("output dimension must be greater than zero")
        if errors:
            raise ConfigError(errors)

    def postprocess(self, batch: PipelineBatch) -> FeatureExtractionOutput:
        if batch.size == 0:
            return FeatureExtractionOutput(embeddings=[])

        output = batch.output_tensor(0)
        width = self.output_dim or np.shape(output)[-1]
        rank = np.ndim(output)
        if rank == 3:
            token_embeddings = extract_logits(
                output, batch.size, batch.max_sequence_length, width, batch.token_counts
            )
            embeddings = [vectors.mean(axis=0) for vectors in token_embeddings]
        elif rank == 2:
            embeddings = extract_rows(output, batch.size, width)
        else:
            raise ShapeError(f"feature extraction output has unsupported rank {rank}")

        if self.normalize:
            embeddings = [l2_normalize(e) for e in embeddings]
        return FeatureExtractionOutput(embeddings=[e.astype(float).tolist() for e in embeddings])
