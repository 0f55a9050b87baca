"""
Model loading utilities for the pretrained LiDAR detection network.

The loader:
 - picks the inference device from `DETECTOR_USE_GPU` / `DETECTOR_GPU_ID`,
 - loads the serialized network from `DETECTOR_MODEL_PATH`,
 - keeps a single shared instance in eval mode,
 - exposes `get_detector_model()` for inference callers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Optional, Tuple

import torch

from . import config

logger = logging.getLogger(__name__)

_MODEL: Optional[torch.nn.Module] = None
_DEVICE: Optional[torch.device] = None
_LOCK = Lock()


def select_device(use_gpu: bool, gpu_id: int = 0) -> torch.device:
    """Return the inference device, preferring CUDA -> Apple MPS when a GPU is requested."""
    if not use_gpu:
        return torch.device("cpu")
    if torch.cuda.is_available():
        if gpu_id >= torch.cuda.device_count():
            raise ValueError(
                f"DETECTOR_GPU_ID={gpu_id} but only {torch.cuda.device_count()} CUDA device(s) found"
            )
        return torch.device(f"cuda:{gpu_id}")
    if torch.backends.mps.is_available():  # type: ignore[attr-defined]
        return torch.device("mps")
    logger.warning("GPU requested but none is available, running the detector on CPU")
    return torch.device("cpu")


def _try_load_torchscript(model_path: Path, device: torch.device) -> torch.nn.Module:
    """Load a TorchScript archive if possible."""
    model = torch.jit.load(str(model_path), map_location=device)
    model.eval()
    return model


def _load_pickled_module(model_path: Path, device: torch.device) -> torch.nn.Module:
    """Load a network saved whole with `torch.save(model, path)`."""
    # The path comes from operator configuration, so full unpickling is allowed.
    try:
        checkpoint = torch.load(model_path, map_location=device, weights_only=False)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Could not load detector network from {model_path}") from exc
    if not isinstance(checkpoint, torch.nn.Module):
        raise RuntimeError(
            f"Unsupported checkpoint format for the detector: {type(checkpoint).__name__}"
        )
    checkpoint.to(device)
    checkpoint.eval()
    return checkpoint


def load_network(model_path: Path, device: torch.device) -> torch.nn.Module:
    if not model_path.exists():
        raise FileNotFoundError(f"Detector network not found at {model_path}")

    try:
        logger.info("Attempting to load TorchScript network from %s", model_path)
        return _try_load_torchscript(model_path, device)
    except Exception as script_error:  # noqa: BLE001
        logger.info("TorchScript load failed, falling back to pickled module. Error: %s", script_error)
        return _load_pickled_module(model_path, device)


def get_detector_model() -> Tuple[torch.nn.Module, torch.device]:
    """
    Return a singleton network + device pair.

    The network is loaded once on first access and kept resident to avoid
    re-initialization costs across requests or batch jobs.
    """
    global _MODEL, _DEVICE
    if _MODEL is not None and _DEVICE is not None:
        return _MODEL, _DEVICE

    with _LOCK:
        if _MODEL is None:
            settings = config.get_settings()
            device = select_device(settings.detector_use_gpu, settings.detector_gpu_id)
            _MODEL = load_network(settings.detector_model_path, device)
            _DEVICE = device
            logger.info("Detector network loaded on device: %s", _DEVICE)
    return _MODEL, _DEVICE


def reset_detector_model() -> None:
    """Drop the shared network so the next access reloads it from settings."""
    global _MODEL, _DEVICE
    with _LOCK:
        _MODEL = None
        _DEVICE = None
