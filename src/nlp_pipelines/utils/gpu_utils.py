"""Device selection and cache release for the torch engine."""

from dataclasses import dataclass
from typing import Any, List, Optional

import torch

from ..models.exceptions import ConfigError
from .project_logger import get_logger


@dataclass(frozen=True)
class DeviceMemory:
    """Free and total memory of one CUDA device, in MB."""
    device_id: int
    free_mb: float
    total_mb: float


def cuda_memory() -> List[DeviceMemory]:
    """Memory of every visible CUDA device; empty without CUDA."""
    if not torch.cuda.is_available():
        return []
    devices = []
    for device_id in range(torch.cuda.device_count()):
        free, total = torch.cuda.mem_get_info(device_id)
        devices.append(DeviceMemory(device_id, free / 1024 / 1024, total / 1024 / 1024))
    return devices


def resolve_device(
    preference: str = "auto",
    *,
    min_free_mb: int = 1024,
    logger: Optional[Any] = None
) -> torch.device:
    """Turn a configured device name into a torch device.

    "auto" picks the CUDA device with the most free memory above
    ``min_free_mb`` and falls back to the CPU.

    Raises:
        ConfigError: For unknown device names or CUDA requested without CUDA
    """
    logger = logger or get_logger(__name__)
    if preference != "auto":
        try:
            device = torch.device(preference)
        except RuntimeError as e:
            raise ConfigError([f"unknown device '{preference}': {e}"]) from e
        if device.type == "cuda" and not torch.cuda.is_available():
            raise ConfigError([f"device '{preference}' requested but CUDA is not available"])
        return device

    try:
        candidates = [d for d in cuda_memory() if d.free_mb >= min_free_mb]
    except RuntimeError as e:
        logger.warning(f"Could not query CUDA memory, using cpu: {e}")
        return torch.device("cpu")
    if not candidates:
        return torch.device("cpu")
    best = max(candidates, key=lambda d: d.free_mb)
    logger.debug(f"Selected cuda:{best.device_id} with {best.free_mb:.0f}MB free")
    return torch.device(f"cuda:{best.device_id}")


def release_device_cache(device: torch.device) -> None:
    """Return cached allocator memory after a model is dropped."""
    if device.type == "cuda" and torch.cuda.is_available():
        torch.cuda.empty_cache()
