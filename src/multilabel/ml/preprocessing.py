"""Image decoding and input-tensor preparation.

Images are handled in OpenCV's native layout (HxW or HxWxC, BGR/BGRA
channel order). The network input is a planar float32 tensor of shape
(1, C, H, W) with the per-channel mean already subtracted.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import cv2
import numpy as np

from multilabel.errors import ImageDecodeError, ModelLoadError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# (image channels, network channels) -> OpenCV conversion code
_COLOR_CONVERSIONS: dict[tuple[int, int], int] = {
    (3, 1): cv2.COLOR_BGR2GRAY,
    (4, 1): cv2.COLOR_BGRA2GRAY,
    (4, 3): cv2.COLOR_BGRA2BGR,
    (1, 3): cv2.COLOR_GRAY2BGR,
}


def load_image(path: str | Path) -> NDArray[np.generic]:
    """Read an image from disk, keeping its native channel count and depth.

    Raises:
        ImageDecodeError: If the file is missing or cannot be decoded.
    """
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None or image.size == 0:
        raise ImageDecodeError(f"Unable to decode image {path}")
    return image


def decode_image(data: bytes, max_pixels: int | None = None) -> NDArray[np.generic]:
    """Decode an in-memory encoded image.

    Raises:
        ImageDecodeError: If the bytes are not a decodable image or the image
            has more than ``max_pixels`` pixels.
    """
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
    if image is None or image.size == 0:
        raise ImageDecodeError("Unable to decode uploaded image")
    height, width = image.shape[:2]
    if max_pixels is not None and height * width > max_pixels:
        raise ImageDecodeError(f"Image has {height * width} pixels, limit is {max_pixels}")
    return image


def load_mean(path: str | Path) -> NDArray[np.float32]:
    """Load a planar mean image saved with ``numpy.save``.

    Accepts arrays shaped (C, H, W) or (1, C, H, W).

    Raises:
        ModelLoadError: If the file cannot be read or has an unexpected shape.
    """
    try:
        blob = np.load(str(path), allow_pickle=False)
    except (OSError, ValueError) as exc:
        raise ModelLoadError(f"Unable to read mean file {path}: {exc}") from exc

    if not isinstance(blob, np.ndarray):
        blob.close()
        raise ModelLoadError(f"Mean file {path} should hold a single .npy array, not an .npz archive")
    if blob.ndim == 4 and blob.shape[0] == 1:
        blob = blob[0]
    if blob.ndim != 3:
        raise ModelLoadError(f"Mean file {path} should hold a CxHxW array, got shape {blob.shape}")
    return blob.astype(np.float32, copy=False)


def channel_mean(mean_blob: NDArray[np.floating], num_channels: int) -> NDArray[np.float32]:
    """Collapse a planar mean image to one value per channel.

    The returned vector is subtracted uniformly at every pixel, so spatial
    structure of the mean image is discarded.

    Raises:
        ModelLoadError: If the blob's channel count differs from ``num_channels``.
    """
    if mean_blob.shape[0] != num_channels:
        raise ModelLoadError(
            f"Number of channels of mean file ({mean_blob.shape[0]}) doesn't match input layer ({num_channels})"
        )
    return mean_blob.reshape(num_channels, -1).mean(axis=1, dtype=np.float64).astype(np.float32)


def convert_channels(image: NDArray[np.generic], num_channels: int) -> NDArray[np.generic]:
    """Convert an OpenCV image to the network's channel count."""
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    image_channels = 1 if image.ndim == 2 else image.shape[2]
    code = _COLOR_CONVERSIONS.get((image_channels, num_channels))
    if code is None:
        return image
    return cv2.cvtColor(image, code)


def prepare_input(
    image: NDArray[np.generic],
    geometry: tuple[int, int],
    mean_pixel: NDArray[np.float32],
) -> NDArray[np.float32]:
    """Turn a decoded image into a normalized (1, C, H, W) float32 tensor.

    Args:
        image: Decoded image in OpenCV layout.
        geometry: Network input size as (width, height).
        mean_pixel: Per-channel mean, one value per network channel.
    """
    num_channels = len(mean_pixel)
    sample = convert_channels(image, num_channels)

    width, height = geometry
    if sample.shape[1] != width or sample.shape[0] != height:
        sample = cv2.resize(sample, (width, height))

    sample = sample.astype(np.float32)
    if sample.ndim == 2:
        sample = sample[:, :, np.newaxis]
    if sample.shape[2] != num_channels:
        raise ImageDecodeError(f"Image has {sample.shape[2]} channels after conversion, network expects {num_channels}")

    normalized = sample - mean_pixel.reshape(1, 1, num_channels)
    return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis, ...])
