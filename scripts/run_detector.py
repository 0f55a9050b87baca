"""
Quick local test helper: runs the detector on a depth/height image pair and
writes the class color PNG to disk. This bypasses the API and R2 upload layers.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

# Ensure project root is importable when running from scripts/
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cnn_lidar_detector import config
from cnn_lidar_detector.batch_worker import FramePair, process_batch
from cnn_lidar_detector.pipeline import CnnLidarDetector


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the CNN LiDAR detector on a local frame pair")
    parser.add_argument("--depth", required=True, help="Path to the depth projection image")
    parser.add_argument("--height", required=True, help="Path to the height projection image")
    parser.add_argument("--output", required=True, help="Path to write the class color PNG")
    parser.add_argument("--threshold", type=float, default=None, help="Objectness score threshold in [0, 1]")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    detector = CnnLidarDetector.from_settings(config.get_settings(), score_threshold=args.threshold)
    pair = FramePair(Path(args.depth), Path(args.height), Path(args.output))
    (result,) = process_batch([pair], detector=detector)
    print(f"Wrote class image to {pair.output_path} counts={result.class_counts}")


if __name__ == "__main__":
    main()
