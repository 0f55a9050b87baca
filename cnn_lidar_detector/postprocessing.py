"""Post-processing for the detector outputs: objectness maps to a class color image."""

from __future__ import annotations

from io import BytesIO
import logging
from pathlib import Path
from typing import Dict, List, Sequence

import cv2
import numpy as np
from PIL import Image

from .errors import NetworkOutputError

logger = logging.getLogger(__name__)

BOXES_CHANNELS = 24
OBJECTNESS_CHANNELS = 4

# Objectness channel index -> (class name, BGR color). Channel 0 is background.
# Painted in this order, so a later class wins where several pass the threshold.
CLASS_COLORS = {
    1: ("car", (0, 0, 255)),
    2: ("person", (0, 255, 0)),
    3: ("bike", (255, 0, 0)),
}


def check_output_shape(array: np.ndarray, expected_channels: int, name: str) -> None:
    """Outputs must be (1, C, H, W) with the channel count the detector head emits."""
    if array.ndim != 4:
        raise NetworkOutputError(
            f"The output {name} layer should be a 4-D (N, C, H, W) blob, but instead has shape {array.shape}"
        )
    if array.shape[0] < 1:
        raise NetworkOutputError(f"The output {name} layer has an empty batch: shape {array.shape}")
    if array.shape[1] != expected_channels:
        raise NetworkOutputError(
            f"The output {name} layer should be {expected_channels} channel image, "
            f"but instead is {array.shape[1]}"
        )


def split_objectness_channels(objectness: np.ndarray) -> List[np.ndarray]:
    """Return one min-max normalized [0, 1] map per class from the first batch item."""
    channels = []
    for i in range(objectness.shape[1]):
        channel = np.ascontiguousarray(objectness[0, i], dtype=np.float32)
        channels.append(cv2.normalize(channel, None, 1.0, 0.0, cv2.NORM_MINMAX))
    return channels


def colorize_objectness(channels: Sequence[np.ndarray], score_threshold: float) -> np.ndarray:
    """Paint each pixel with the color of the classes scoring above the threshold."""
    height, width = channels[0].shape
    bgr = np.zeros((height, width, 3), dtype=np.uint8)
    for index, (_, color) in CLASS_COLORS.items():
        bgr[channels[index] > score_threshold] = color
    return bgr


def flip_both_axes(image: np.ndarray) -> np.ndarray:
    return cv2.flip(image, -1)


def count_class_pixels(bgr: np.ndarray) -> Dict[str, int]:
    counts = {}
    for name, color in CLASS_COLORS.values():
        counts[name] = int(np.count_nonzero(np.all(bgr == color, axis=-1)))
    return counts


def encode_png(bgr: np.ndarray) -> bytes:
    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    buf = BytesIO()
    Image.fromarray(rgb).save(buf, format="PNG")
    return buf.getvalue()


def maybe_dump_debug(channels: Sequence[np.ndarray], bgr: np.ndarray, debug_dir: Path) -> None:
    """Write the normalized objectness channels and the class image for inspection."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        for i, channel in enumerate(channels):
            channel_u8 = np.clip(channel * 255.0, 0, 255).astype(np.uint8)
            cv2.imwrite(str(debug_dir / f"objectness_{i}.png"), channel_u8)
        cv2.imwrite(str(debug_dir / "classes.png"), bgr)
        logger.debug("postprocess: wrote debug outputs to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("postprocess: failed to write debug outputs: %s", exc)
