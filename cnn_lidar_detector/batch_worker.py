"""
Batch worker for recorded depth/height projection pairs.

Frames captured offline (one depth and one height image per scan) are run
through the shared detector in order. Queueing and scheduling are left to the
caller so this can be embedded into any worker framework.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .pipeline import CnnLidarDetector, DetectionResult
from .postprocessing import encode_png
from .preprocessing import load_single_channel_image_from_bytes

logger = logging.getLogger(__name__)


@dataclass
class FramePair:
    depth_path: Path
    height_path: Path
    output_path: Optional[Path] = None


def _read_image(path: Path):
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    return load_single_channel_image_from_bytes(path.read_bytes())


def process_batch(
    pairs: Iterable[FramePair], detector: Optional[CnnLidarDetector] = None
) -> List[DetectionResult]:
    """
    Run the detector over each frame pair synchronously.

    Returns results matching the input order. When a pair has an
    `output_path`, the class color image is also written there as PNG.
    """
    detector = detector or CnnLidarDetector.from_settings()
    results: List[DetectionResult] = []
    for pair in pairs:
        logger.info("Processing frame depth=%s height=%s", pair.depth_path, pair.height_path)
        result = detector.detect(_read_image(Path(pair.depth_path)), _read_image(Path(pair.height_path)))
        if pair.output_path is not None:
            output_path = Path(pair.output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(encode_png(result.image))
        results.append(result)
    return results
