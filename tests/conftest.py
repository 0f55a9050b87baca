"""Shared fixtures for the detector tests."""

from __future__ import annotations

import os
from typing import List

# api.py reads settings at import time.
os.environ.setdefault("DETECTOR_MODEL_PATH", "/tmp/lidar_detector_tests/missing.pt")

import numpy as np
import pytest
import torch


class FixedOutputNet(torch.nn.Module):
    """Returns canned outputs and records every input it is fed."""

    def __init__(self, boxes: torch.Tensor, objectness: torch.Tensor, as_dict: bool = False):
        super().__init__()
        self.boxes = boxes
        self.objectness = objectness
        self.as_dict = as_dict
        self.inputs: List[torch.Tensor] = []

    def forward(self, x):
        self.inputs.append(x.clone())
        if self.as_dict:
            return {"boxes": self.boxes, "objectness": self.objectness}
        return self.boxes, self.objectness


@pytest.fixture
def objectness_maps() -> np.ndarray:
    """(1, 4, 2, 3) scores already spanning [0, 1] so normalization is a no-op."""
    background = np.zeros((2, 3))
    background[0, 0] = 1.0
    car = np.array([[1, 1, 0], [0, 0, 0]], dtype=np.float32)
    person = np.array([[0, 1, 0], [0, 0, 1]], dtype=np.float32)
    bike = np.array([[0, 0, 0], [0, 0, 1]], dtype=np.float32)
    return np.stack([background, car, person, bike])[None].astype(np.float32)


@pytest.fixture
def make_net(objectness_maps):
    def _make(boxes_channels: int = 24, objectness=None, as_dict: bool = False) -> FixedOutputNet:
        objectness = objectness_maps if objectness is None else objectness
        objectness_t = torch.from_numpy(np.asarray(objectness, dtype=np.float32))
        height, width = objectness_t.shape[-2:]
        boxes = torch.zeros(1, boxes_channels, height, width)
        return FixedOutputNet(boxes, objectness_t, as_dict=as_dict)

    return _make
