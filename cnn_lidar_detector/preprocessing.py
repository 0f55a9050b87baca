"""
Image loading and preprocessing for the LiDAR detection network.

Depth and height projections arrive already scaled by the upstream projection
step; preprocessing only resizes them to the network input geometry and
writes them into a single input buffer, one plane per channel.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import List, Tuple

import cv2
import numpy as np
from PIL import Image
import torch

from .errors import InputAliasingError

DEPTH_CHANNEL = 0
HEIGHT_CHANNEL = 1

# Pillow modes that already hold a single channel of samples.
_SINGLE_CHANNEL_MODES = {"L", "I", "I;16", "I;16B", "I;16L", "F"}


@dataclass
class PreprocessResult:
    tensor: torch.Tensor
    buffer: np.ndarray
    orig_size: Tuple[int, int]  # (width, height)
    input_size: Tuple[int, int]


def wrap_input_buffer(num_channels: int, input_size: Tuple[int, int]) -> Tuple[np.ndarray, List[np.ndarray]]:
    """Allocate the (1, C, H, W) input buffer and one writable view per channel."""
    width, height = input_size
    buffer = np.zeros((1, num_channels, height, width), dtype=np.float32)
    channels = [buffer[0, i] for i in range(num_channels)]
    return buffer, channels


def _as_single_channel(image: np.ndarray, name: str) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim != 2:
        raise ValueError(f"{name} image must be single channel, got shape {image.shape}")
    if image.size == 0:
        raise ValueError(f"{name} image is empty")
    return image.astype(np.float32, copy=False)


def _resize_to(image: np.ndarray, input_size: Tuple[int, int]) -> np.ndarray:
    width, height = input_size
    if image.shape[:2] == (height, width):
        return image
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


def prepare_input(
    depth_image: np.ndarray,
    height_image: np.ndarray,
    input_size: Tuple[int, int],
    device: torch.device,
    num_channels: int = 2,
) -> PreprocessResult:
    """
    Resize the depth and height images and copy them into the input buffer.

    Depth goes to channel 0 and height to channel 1. The two images may have
    different sizes; each one is resized only when it does not already match
    the network geometry.
    """
    depth = _as_single_channel(depth_image, "depth")
    height = _as_single_channel(height_image, "height")

    buffer, channels = wrap_input_buffer(num_channels, input_size)
    np.copyto(channels[DEPTH_CHANNEL], _resize_to(depth, input_size))
    np.copyto(channels[HEIGHT_CHANNEL], _resize_to(height, input_size))

    if not np.shares_memory(channels[DEPTH_CHANNEL], buffer):
        raise InputAliasingError("Input channels are not wrapping the input buffer of the network.")

    tensor = torch.from_numpy(buffer).to(device)
    return PreprocessResult(
        tensor=tensor,
        buffer=buffer,
        orig_size=(depth.shape[1], depth.shape[0]),
        input_size=input_size,
    )


def load_single_channel_image_from_bytes(image_bytes: bytes) -> np.ndarray:
    """
    Decode a depth or height projection.

    8/16-bit, 32-bit integer and float images keep their raw values since the
    network was trained on them unscaled; color images are reduced to
    luminance.
    """
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Invalid image data") from exc

    if image.mode not in _SINGLE_CHANNEL_MODES:
        image = image.convert("L")
    return np.asarray(image).astype(np.float32)
