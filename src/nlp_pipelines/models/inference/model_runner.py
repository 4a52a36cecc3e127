"""Inference engines executing loaded model graphs against input tensors."""

import io
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import onnxruntime as ort
import torch

from ...all_dataclass import SessionConfig
from ...utils.gpu_utils import release_device_cache, resolve_device
from ...utils.project_logger import get_logger
from ..exceptions import ConfigError
from .inference_dataclasses import EngineSession, TensorSpec


class InferenceEngine(ABC):
    """Loads model bytes into sessions and runs them."""

    name: str = ""
    model_suffix: str = ""

    @abstractmethod
    def load(self, model_bytes: bytes) -> EngineSession:
        """Load a serialized model.

        Raises:
            ConfigError: When the engine cannot load the model
        """
        pass

    @abstractmethod
    def run(self, session: EngineSession, inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        """Run the model; failures propagate as the engine's own exceptions."""
        pass

    @abstractmethod
    def destroy(self, session: EngineSession) -> None:
        pass


class OnnxRuntimeEngine(InferenceEngine):
    """Runs ONNX graphs with onnxruntime."""

    name = "onnx"
    model_suffix = ".onnx"

    def __init__(
        self,
        *,
        library_path: Optional[str] = None,
        intra_op_num_threads: int = 0,
        inter_op_num_threads: int = 0,
        providers: Optional[List[str]] = None,
        logger: Optional[Any] = None
    ) -> None:
        if library_path is not None and not Path(library_path).is_file():
            raise ConfigError([f"engine library path '{library_path}' is not a file"])
        self.library_path = library_path
        self.intra_op_num_threads = intra_op_num_threads
        self.inter_op_num_threads = inter_op_num_threads
        self.providers = providers or ort.get_available_providers()
        self.logger = logger or get_logger(__name__)

    def _session_options(self) -> ort.SessionOptions:
        options = ort.SessionOptions()
        if self.intra_op_num_threads > 0:
            options.intra_op_num_threads = self.intra_op_num_threads
        if self.inter_op_num_threads > 0:
            options.inter_op_num_threads = self.inter_op_num_threads
        if self.library_path:
            options.register_custom_ops_library(self.library_path)
        return options

    def load(self, model_bytes: bytes) -> EngineSession:
        try:
            session = ort.InferenceSession(
                model_bytes,
                sess_options=self._session_options(),
                providers=self.providers
            )
        except Exception as e:
            raise ConfigError([f"onnxruntime could not load the model: {e}"]) from e

        self.logger.debug(f"Loaded onnx model with providers {session.get_providers()}")
        return EngineSession(
            model=session,
            inputs=[TensorSpec.from_engine(i.name, i.shape, i.type) for i in session.get_inputs()],
            outputs=[TensorSpec.from_engine(o.name, o.shape, o.type) for o in session.get_outputs()],
            device=session.get_providers()[0]
        )

    def run(self, session: EngineSession, inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        return session.model.run(None, inputs)

    def destroy(self, session: EngineSession) -> None:
        session.model = None


def _flatten_outputs(outputs: Any) -> List[torch.Tensor]:
    if isinstance(outputs, torch.Tensor):
        return [outputs]
    if isinstance(outputs, dict):
        outputs = list(outputs.values())
    flat = []
    for item in outputs:
        flat.extend(_flatten_outputs(item))
    return flat


class TorchScriptEngine(InferenceEngine):
    """Runs TorchScript modules with torch.

    TorchScript does not declare tensor shapes, so output specs are taken
    from a warm-up call on a one-input, two-token batch.
    """

    name = "torch"
    model_suffix = ".pt"

    def __init__(
        self,
        *,
        device: str = "auto",
        intra_op_num_threads: int = 0,
        logger: Optional[Any] = None
    ) -> None:
        self.logger = logger or get_logger(__name__)
        self.device = resolve_device(device, logger=self.logger)
        if intra_op_num_threads > 0:
            torch.set_num_threads(intra_op_num_threads)

    def load(self, model_bytes: bytes) -> EngineSession:
        try:
            module = torch.jit.load(io.BytesIO(model_bytes), map_location=self.device)
        except RuntimeError as e:
            raise ConfigError([f"torch could not load the model: {e}"]) from e
        module.eval()

        # traced graphs may suffix argument names, e.g. "input_ids.1"
        names = [
            argument.name.split(".")[0]
            for argument in module.forward.schema.arguments
            if argument.name != "self"
        ]
        inputs = [TensorSpec(name=name, shape=(None, None), dtype="int64") for name in names]
        session = EngineSession(model=module, inputs=inputs, device=str(self.device))

        probe = {spec.name: np.zeros((1, 2), dtype=np.int64) for spec in inputs}
        if "attention_mask" in probe:
            probe["attention_mask"][:] = 1
        try:
            results = self.run(session, probe)
        except RuntimeError as e:
            raise ConfigError([f"torch model failed its warm-up call: {e}"]) from e
        session.outputs = [
            TensorSpec(
                name=f"output_{i}",
                shape=(None,) * (result.ndim - 1) + (result.shape[-1],) if result.ndim else (),
                dtype="float32"
            )
            for i, result in enumerate(results)
        ]
        self.logger.debug(f"Loaded torch model on {self.device}")
        return session

    def run(self, session: EngineSession, inputs: Dict[str, np.ndarray]) -> List[np.ndarray]:
        arguments = [
            torch.from_numpy(inputs[spec.name]).to(self.device)
            for spec in session.inputs
        ]
        with torch.inference_mode():
            outputs = session.model(*arguments)
        return [t.detach().float().cpu().numpy() for t in _flatten_outputs(outputs)]

    def destroy(self, session: EngineSession) -> None:
        session.model = None
        release_device_cache(self.device)


def create_engine(config: SessionConfig, logger: Optional[Any] = None) -> InferenceEngine:
    """Create the inference engine selected by the session configuration."""
    if config.engine == "onnx":
        return OnnxRuntimeEngine(
            library_path=config.engine_library_path,
            intra_op_num_threads=config.intra_op_num_threads,
            inter_op_num_threads=config.inter_op_num_threads,
            logger=logger
        )
    if config.engine == "torch":
        if config.engine_library_path is not None:
            if not Path(config.engine_library_path).is_file():
                raise ConfigError([f"engine library path '{config.engine_library_path}' is not a file"])
            torch.ops.load_library(config.engine_library_path)
        return TorchScriptEngine(
            device=config.device,
            intra_op_num_threads=config.intra_op_num_threads,
            logger=logger
        )
    raise ConfigError([f"engine '{config.engine}' is not supported, use 'onnx' or 'torch'"])
