"""Tests for input buffer wrapping, resizing and image decoding."""

from __future__ import annotations

from io import BytesIO

import numpy as np
import pytest
import torch
from PIL import Image

from cnn_lidar_detector import preprocessing
from cnn_lidar_detector.errors import InputAliasingError
from cnn_lidar_detector.preprocessing import (
    load_single_channel_image_from_bytes,
    prepare_input,
    wrap_input_buffer,
)

CPU = torch.device("cpu")


def _png_bytes(array: np.ndarray) -> bytes:
    buf = BytesIO()
    Image.fromarray(array).save(buf, format="PNG")
    return buf.getvalue()


def test_wrap_input_buffer_views_alias_buffer() -> None:
    buffer, channels = wrap_input_buffer(2, (8, 4))
    assert buffer.shape == (1, 2, 4, 8)
    assert buffer.dtype == np.float32
    channels[1][:] = 3.0
    assert (buffer[0, 1] == 3.0).all()
    assert not buffer[0, 0].any()


def test_prepare_input_places_depth_then_height() -> None:
    depth = np.full((4, 8), 3.0, dtype=np.float32)
    height = np.full((4, 8, 1), 7, dtype=np.uint8)
    result = prepare_input(depth, height, (8, 4), CPU)

    assert result.tensor.shape == (1, 2, 4, 8)
    assert result.tensor.dtype == torch.float32
    assert (result.tensor[0, 0] == 3.0).all()
    assert (result.tensor[0, 1] == 7.0).all()
    assert result.orig_size == (8, 4)


def test_prepare_input_resizes_mismatched_images() -> None:
    depth = np.full((16, 32), 5.0, dtype=np.float32)
    height = np.full((4, 8), 2.0, dtype=np.float32)
    result = prepare_input(depth, height, (8, 4), CPU)

    np.testing.assert_allclose(result.buffer[0, 0], 5.0, atol=1e-5)
    np.testing.assert_allclose(result.buffer[0, 1], 2.0, atol=1e-5)
    assert result.orig_size == (32, 16)


def test_prepare_input_skips_resize_when_geometry_matches(monkeypatch) -> None:
    def _fail(*args, **kwargs):
        raise AssertionError("resize should not be called")

    monkeypatch.setattr(preprocessing.cv2, "resize", _fail)
    depth = np.arange(32, dtype=np.float32).reshape(4, 8)
    result = prepare_input(depth, depth, (8, 4), CPU)
    np.testing.assert_array_equal(result.buffer[0, 0], depth)


@pytest.mark.parametrize("shape", [(4, 8, 3), (8,), (0, 8)])
def test_prepare_input_rejects_invalid_images(shape) -> None:
    with pytest.raises(ValueError):
        prepare_input(np.zeros(shape), np.zeros((4, 8)), (8, 4), CPU)


def test_load_keeps_16_bit_depth_values() -> None:
    depth = np.array([[0, 300], [1000, 65535]], dtype=np.uint16)
    loaded = load_single_channel_image_from_bytes(_png_bytes(depth))
    assert loaded.dtype == np.float32
    np.testing.assert_array_equal(loaded, depth.astype(np.float32))


def test_load_reduces_color_to_luminance() -> None:
    rgb = np.full((2, 2, 3), 128, dtype=np.uint8)
    loaded = load_single_channel_image_from_bytes(_png_bytes(rgb))
    assert loaded.shape == (2, 2)
    np.testing.assert_array_equal(loaded, 128.0)


def test_load_rejects_garbage() -> None:
    with pytest.raises(ValueError, match="Invalid image data"):
        load_single_channel_image_from_bytes(b"not an image")


def test_prepare_input_detects_detached_channels(monkeypatch) -> None:
    real_wrap = preprocessing.wrap_input_buffer

    def _detached(num_channels, input_size):
        buffer, channels = real_wrap(num_channels, input_size)
        return buffer, [channel.copy() for channel in channels]

    monkeypatch.setattr(preprocessing, "wrap_input_buffer", _detached)
    with pytest.raises(InputAliasingError, match="not wrapping the input buffer"):
        prepare_input(np.zeros((4, 8)), np.zeros((4, 8)), (8, 4), CPU)
