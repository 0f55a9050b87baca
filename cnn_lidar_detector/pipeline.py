"""
High-level detection pipeline.

`CnnLidarDetector.detect` is the main entry point used by the HTTP API, the
batch worker and the local CLI. It keeps orchestration simple:
depth + height -> input buffer -> network -> objectness thresholds -> flipped
class color image.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import torch

from . import config
from .errors import NetworkOutputError
from .model_loader import get_detector_model
from .postprocessing import (
    BOXES_CHANNELS,
    OBJECTNESS_CHANNELS,
    check_output_shape,
    colorize_objectness,
    count_class_pixels,
    encode_png,
    flip_both_axes,
    maybe_dump_debug,
    split_objectness_channels,
)
from .preprocessing import load_single_channel_image_from_bytes, prepare_input

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    image: np.ndarray  # (H, W, 3) uint8 BGR, flipped on both axes
    boxes: np.ndarray  # raw (1, 24, H, W) box regression output
    objectness: List[np.ndarray]  # normalized per-class maps, unflipped
    class_counts: Dict[str, int]


def _to_numpy(output: Any, name: str) -> np.ndarray:
    if not isinstance(output, torch.Tensor):
        raise NetworkOutputError(f"The output {name} layer is not a tensor: {type(output).__name__}")
    return output.detach().float().cpu().numpy()


def _split_outputs(outputs: Any) -> Tuple[np.ndarray, np.ndarray]:
    """Network returns (boxes, objectness), positionally or by name."""
    if isinstance(outputs, dict):
        try:
            boxes, objectness = outputs["boxes"], outputs["objectness"]
        except KeyError as exc:
            raise NetworkOutputError(f"Network output is missing the {exc} layer") from exc
    elif isinstance(outputs, (list, tuple)) and len(outputs) >= 2:
        boxes, objectness = outputs[0], outputs[1]
    else:
        raise NetworkOutputError(
            "Network should return boxes and objectness outputs, got "
            f"{type(outputs).__name__}"
        )
    return _to_numpy(boxes, "boxes"), _to_numpy(objectness, "objectness")


class CnnLidarDetector:
    """Runs the pretrained network on a depth/height projection pair."""

    def __init__(
        self,
        model: torch.nn.Module,
        device: torch.device,
        input_size: Tuple[int, int],
        score_threshold: float,
        num_channels: int = 2,
        debug_dir: Optional[Path] = None,
    ):
        if num_channels < 2:
            raise ValueError(f"Network needs at least 2 input channels (depth, height), got {num_channels}")
        if not 0.0 <= score_threshold <= 1.0:
            raise ValueError("score_threshold must be within [0, 1]")
        self.model = model
        self.device = device
        self.input_size = input_size
        self.score_threshold = score_threshold
        self.num_channels = num_channels
        self.debug_dir = debug_dir

    @classmethod
    def from_settings(
        cls, settings: Optional[config.Settings] = None, score_threshold: Optional[float] = None
    ) -> "CnnLidarDetector":
        settings = settings or config.get_settings()
        model, device = get_detector_model()
        return cls(
            model,
            device,
            input_size=settings.input_size,
            score_threshold=settings.score_threshold if score_threshold is None else score_threshold,
            debug_dir=settings.debug_output_dir if settings.debug else None,
        )

    def detect(self, depth_image: np.ndarray, height_image: np.ndarray) -> DetectionResult:
        preprocessed = prepare_input(
            depth_image, height_image, self.input_size, self.device, num_channels=self.num_channels
        )

        with torch.no_grad():
            outputs = self.model(preprocessed.tensor)
        boxes, objectness = _split_outputs(outputs)

        check_output_shape(boxes, BOXES_CHANNELS, "boxes")
        check_output_shape(objectness, OBJECTNESS_CHANNELS, "objectness")

        channels = split_objectness_channels(objectness)
        bgr = flip_both_axes(colorize_objectness(channels, self.score_threshold))
        class_counts = count_class_pixels(bgr)
        logger.debug(
            "detect: input=%sx%s output=%sx%s threshold=%.3f counts=%s",
            preprocessed.orig_size[0],
            preprocessed.orig_size[1],
            bgr.shape[1],
            bgr.shape[0],
            self.score_threshold,
            class_counts,
        )

        if self.debug_dir is not None:
            maybe_dump_debug(channels, bgr, self.debug_dir)

        return DetectionResult(image=bgr, boxes=boxes, objectness=channels, class_counts=class_counts)


def detect_from_bytes(
    depth_bytes: bytes,
    height_bytes: bytes,
    score_threshold: Optional[float] = None,
) -> Tuple[bytes, Dict[str, int]]:
    """
    Full pipeline from encoded depth/height images to PNG bytes.

    Raises:
        ValueError: when an input is invalid or the threshold is out of range.
    """
    depth = load_single_channel_image_from_bytes(depth_bytes)
    height = load_single_channel_image_from_bytes(height_bytes)

    detector = CnnLidarDetector.from_settings(score_threshold=score_threshold)
    result = detector.detect(depth, height)
    return encode_png(result.image), result.class_counts
