"""
Session: owns the inference engine and every pipeline created from it.

Engine sessions and tokenizers are shared between pipelines built on the same
model path and destroyed once their last pipeline is gone.
"""

import json
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .all_dataclass import Config, FeatureExtractionConfig, TextClassificationConfig, TokenClassificationConfig
from .data_processing.load_tokenizer import Tokenizer, load_tokenizer
from .models.exceptions import ConfigError, PipelineError, join_errors
from .models.inference.inference_dataclasses import EngineSession
from .models.inference.model_runner import InferenceEngine, create_engine
from .pipelines import PIPELINE_CLASSES, BasePipeline
from .utils.file_system import FileSystem
from .utils.project_logger import get_logger
from .utils.resource_handle import ResourceHandle

# Pipeline kind -> Config attribute holding its default options
KIND_CONFIG_SECTIONS = {
    "feature-extraction": "feature_extraction",
    "text-classification": "text_classification",
    "token-classification": "token_classification",
}
LABELLED_KINDS = ("text-classification", "token-classification")


def find_model_file(model_dir: str, suffix: str) -> Path:
    """The single ``suffix`` file in ``model_dir``.

    Raises:
        ConfigError: If there is no such file or more than one
    """
    directory = Path(model_dir)
    if not directory.is_dir():
        raise ConfigError([f"model path {model_dir} is not a directory"])
    candidates = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == suffix)
    if len(candidates) != 1:
        found = ", ".join(p.name for p in candidates) or "none"
        raise ConfigError([
            f"model directory {model_dir} must contain exactly one {suffix} file, found {found}"
        ])
    return candidates[0]


def read_label_map(model_dir: str) -> Dict[int, str]:
    """Read ``id2label`` from the model's config.json; missing file or key gives an empty map."""
    config_path = Path(model_dir) / "config.json"
    if not config_path.is_file():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            model_config = json.load(f)
        return {int(k): str(v) for k, v in model_config.get("id2label", {}).items()}
    except (OSError, ValueError, AttributeError) as e:
        raise ConfigError([f"invalid id2label in {config_path}: {e}"]) from e


class Session:
    """Creates pipelines by kind and unique name, and tears them all down.

    Example:
        >>> with Session(config) as session:
        ...     pipeline = session.new_text_classification_pipeline("sentiment", "./model")
        ...     output = pipeline.run(["I love this"])
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        engine: Optional[InferenceEngine] = None,
        file_system: Optional[FileSystem] = None,
        tokenizer_loader: Callable[[str, Any], Tokenizer] = load_tokenizer,
        logger: Optional[Any] = None
    ) -> None:
        self.config = config or Config()
        self.logger = logger or get_logger("session")
        self.engine = engine or create_engine(self.config.session, self.logger)
        self.file_system = file_system or FileSystem(logger=self.logger)
        self.tokenizer_loader = tokenizer_loader

        self.pipelines: Dict[str, BasePipeline] = {}
        self._sessions: Dict[str, ResourceHandle[EngineSession]] = {}
        self._tokenizers: Dict[str, ResourceHandle[Tokenizer]] = {}
        self._lock = threading.Lock()
        self._destroyed = False
        self.logger.info(f"Session created with {self.engine.name} engine")

    def _session_handle(self, model_path: str, local_dir: str) -> ResourceHandle[EngineSession]:
        handle = self._sessions.get(model_path)
        if handle is not None and not handle.closed:
            return handle.acquire()
        model_file = find_model_file(local_dir, self.engine.model_suffix)
        self.logger.info(f"Loading model: {model_file}")
        engine_session = self.engine.load(model_file.read_bytes())
        handle = ResourceHandle(engine_session, self.engine.destroy, name=f"session:{model_path}")
        self._sessions[model_path] = handle
        return handle

    def _tokenizer_handle(self, model_path: str, local_dir: str) -> ResourceHandle[Tokenizer]:
        handle = self._tokenizers.get(model_path)
        if handle is not None and not handle.closed:
            return handle.acquire()
        tokenizer = self.tokenizer_loader(local_dir, self.logger)
        handle = ResourceHandle(tokenizer, lambda t: t.destroy(), name=f"tokenizer:{model_path}")
        self._tokenizers[model_path] = handle
        return handle

    def new_pipeline(
        self,
        kind: str,
        name: str,
        model_path: str,
        config: Optional[Any] = None
    ) -> BasePipeline:
        """Create, validate and register a pipeline.

        Args:
            kind: One of the registered pipeline kinds
            name: Name unique within this session
            model_path: Local directory or s3:// prefix with model, tokenizer and config.json
            config: Kind-specific options, defaults to the session configuration's

        Returns:
            The validated pipeline

        Raises:
            ConfigError: Unknown kind, duplicate name, bad model directory or failed validation
        """
        with self._lock:
            if self._destroyed:
                raise PipelineError("session has already been destroyed")
            if kind not in PIPELINE_CLASSES:
                raise ConfigError([
                    f"pipeline kind {kind} is not supported, use one of {', '.join(PIPELINE_CLASSES)}"
                ])
            if name in self.pipelines:
                raise ConfigError([f"pipeline with name {name} already exists"])

            options: Dict[str, Any] = {
                "config": config or getattr(self.config, KIND_CONFIG_SECTIONS[kind]),
            }
            with self.file_system.local_copy(model_path) as local_dir:
                if kind in LABELLED_KINDS:
                    options["id2label"] = read_label_map(local_dir)
                session_handle = self._session_handle(model_path, local_dir)
                try:
                    tokenizer_handle = self._tokenizer_handle(model_path, local_dir)
                except Exception:
                    session_handle.release()
                    raise

            try:
                pipeline = PIPELINE_CLASSES[kind](
                    name=name,
                    model_path=model_path,
                    engine=self.engine,
                    session_handle=session_handle,
                    tokenizer_handle=tokenizer_handle,
                    logger=self.logger,
                    **options
                )
            except Exception:
                tokenizer_handle.release()
                session_handle.release()
                raise
            try:
                pipeline.validate()
            except PipelineError:
                pipeline.destroy()
                raise
            self.pipelines[name] = pipeline
            self.logger.info(f"Created {kind} pipeline {name} from {model_path}")
            return pipeline

    def new_feature_extraction_pipeline(
        self, name: str, model_path: str, config: Optional[FeatureExtractionConfig] = None
    ) -> BasePipeline:
        return self.new_pipeline("feature-extraction", name, model_path, config)

    def new_text_classification_pipeline(
        self, name: str, model_path: str, config: Optional[TextClassificationConfig] = None
    ) -> BasePipeline:
        return self.new_pipeline("text-classification", name, model_path, config)

    def new_token_classification_pipeline(
        self, name: str, model_path: str, config: Optional[TokenClassificationConfig] = None
    ) -> BasePipeline:
        return self.new_pipeline("token-classification", name, model_path, config)

    def get_pipeline(self, name: str) -> BasePipeline:
        try:
            return self.pipelines[name]
        except KeyError:
            raise ConfigError([f"pipeline {name} does not exist"]) from None

    def get_stats(self) -> List[str]:
        stats = []
        for pipeline in self.pipelines.values():
            stats.extend(pipeline.get_stats())
        return stats

    def destroy(self) -> None:
        """Destroy every pipeline and shared resource once.

        Raises:
            CombinedError: When more than one teardown step failed (a single failure is raised as is)
        """
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            errors = []
            for pipeline in self.pipelines.values():
                try:
                    pipeline.destroy()
                except Exception as e:
                    errors.append(e)
            for handle in list(self._tokenizers.values()) + list(self._sessions.values()):
                try:
                    handle.close()
                except Exception as e:
                    errors.append(e)
            self.pipelines.clear()
            self._tokenizers.clear()
            self._sessions.clear()
        error = join_errors(errors)
        if error is not None:
            raise error
        self.logger.info("Session destroyed")

    def __enter__(self) -> 'Session':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.destroy()
