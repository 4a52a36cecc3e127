from typing import Dict, Type

from .base import BasePipeline
from .feature_extraction import FeatureExtractionPipeline
from .pipeline_dataclasses import (
    ClassificationOutput,
    Entity,
    FeatureExtractionOutput,
    PipelineTimings,
    TextClassificationOutput,
    TokenClassificationOutput,
)
from .text_classification import TextClassificationPipeline
from .token_classification import TokenClassificationPipeline

PIPELINE_CLASSES: Dict[str, Type[BasePipeline]] = {
    FeatureExtractionPipeline.kind: FeatureExtractionPipeline,
    TextClassificationPipeline.kind: TextClassificationPipeline,
    TokenClassificationPipeline.kind: TokenClassificationPipeline,
}

__all__ = [
    "BasePipeline",
    "ClassificationOutput",
    "Entity",
    "FeatureExtractionOutput",
    "FeatureExtractionPipeline",
    "PIPELINE_CLASSES",
    "PipelineTimings",
    "TextClassificationOutput",
    "TextClassificationPipeline",
    "TokenClassificationOutput",
    "TokenClassificationPipeline",
]
