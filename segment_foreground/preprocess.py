from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Tuple

import cv2
import numpy as np

from .config import (
    IMAGENET_MEAN,
    IMAGENET_STD,
    PAD_COLOR,
    RESAMPLE_INTERPOLATION,
    SYMMETRIC_CENTER,
    ModelFamily,
    NormalizationScheme,
)
from .errors import InvalidImageDimensions


@dataclass(frozen=True)
class PaddingDescriptor:
    """Where the resized content sits inside the letterboxed canvas."""

    pad_x: int
    pad_y: int
    content_width: int
    content_height: int
    target_width: int
    target_height: int

    def __post_init__(self) -> None:
        if not (1 <= self.content_width <= self.target_width and 1 <= self.content_height <= self.target_height):
            raise ValueError(
                f"Content ({self.content_width}x{self.content_height}) must fit target "
                f"({self.target_width}x{self.target_height})"
            )
        if self.pad_x != (self.target_width - self.content_width) // 2:
            raise ValueError(f"pad_x={self.pad_x} is not centered for content_width={self.content_width}")
        if self.pad_y != (self.target_height - self.content_height) // 2:
            raise ValueError(f"pad_y={self.pad_y} is not centered for content_height={self.content_height}")

    @property
    def rect(self) -> Tuple[int, int, int, int]:
        return (self.pad_x, self.pad_y, self.content_width, self.content_height)

    def to_dict(self) -> Dict[str, int]:
        """Convenience helper if you want JSON-serializable metadata."""
        return {
            "pad_x": int(self.pad_x),
            "pad_y": int(self.pad_y),
            "content_width": int(self.content_width),
            "content_height": int(self.content_height),
            "target_width": int(self.target_width),
            "target_height": int(self.target_height),
        }


def round_half_up(value: float) -> int:
    """Round to nearest, ties away from zero (inputs here are non-negative)."""
    return int(math.floor(value + 0.5))


def resample(img: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Lanczos resize of a uint8 image, filtered in float32 and rounded back.

    Used for both the forward resize and the matte restore. Filtering in
    float keeps flat regions exactly flat (cv2's 8-bit fixed-point path can
    drift a constant 255 down to 254).
    """
    out = cv2.resize(img.astype(np.float32), (width, height), interpolation=RESAMPLE_INTERPOLATION)
    out = np.clip(np.floor(out + 0.5), 0.0, 255.0).astype(np.uint8)
    return out.reshape((height, width) + img.shape[2:])


def resize_with_padding(img: np.ndarray, target_w: int, target_h: int) -> Tuple[np.ndarray, PaddingDescriptor]:
    """
    Aspect-safe resize to fit within (target_w, target_h), then pad with black.

    Sizes are rounded half away from zero, so a 1001x1 source into 320x320
    yields 320x0 and is rejected rather than producing an empty overlay.

    Returns:
      - padded_rgb: uint8 ndarray (target_h, target_w, 3)
      - padding: PaddingDescriptor with offsets and resized (pre-pad) size
    """
    if img.ndim != 3 or img.shape[2] != 3:
        raise ValueError(f"Expected RGB image (H,W,3), got shape={img.shape}")
    if target_w <= 0 or target_h <= 0:
        raise ValueError(f"Target size must be positive, got {(target_w, target_h)}")

    orig_h, orig_w = img.shape[:2]
    if orig_h <= 0 or orig_w <= 0:
        raise InvalidImageDimensions((orig_w, orig_h), (target_w, target_h))

    scale = min(float(target_w) / float(orig_w), float(target_h) / float(orig_h))
    new_w = min(target_w, round_half_up(orig_w * scale))
    new_h = min(target_h, round_half_up(orig_h * scale))
    if new_w == 0 or new_h == 0:
        raise InvalidImageDimensions((orig_w, orig_h), (target_w, target_h), (new_w, new_h))

    if img.dtype != np.uint8:
        raise ValueError(f"Expected uint8 image, got dtype={img.dtype}")
    resized = resample(img, new_w, new_h)

    pad_x = (target_w - new_w) // 2
    pad_y = (target_h - new_h) // 2
    padded = np.full((target_h, target_w, 3), PAD_COLOR, dtype=np.uint8)
    padded[pad_y : pad_y + new_h, pad_x : pad_x + new_w] = resized

    padding = PaddingDescriptor(
        pad_x=pad_x,
        pad_y=pad_y,
        content_width=new_w,
        content_height=new_h,
        target_width=target_w,
        target_height=target_h,
    )
    return padded, padding


def encode(img: np.ndarray, scheme: NormalizationScheme) -> np.ndarray:
    """
    Normalize a uint8 RGB canvas into a float32 planar tensor (1,3,H,W).

    Channel 0's plane comes first, row-major, then channels 1 and 2. No
    clamping is applied.
    """
    if img.ndim != 3 or img.shape[2] != 3:
        raise ValueError(f"Expected RGB image (H,W,3), got shape={img.shape}")
    if img.dtype != np.uint8:
        raise ValueError(f"Expected uint8 image, got dtype={img.dtype}")

    x = img.astype(np.float32)
    if scheme is NormalizationScheme.SYMMETRIC_UNIT:
        x = (x - np.float32(SYMMETRIC_CENTER)) / np.float32(SYMMETRIC_CENTER)
    elif scheme is NormalizationScheme.IMAGENET_STATS:
        mean = np.array(IMAGENET_MEAN, dtype=np.float32).reshape(1, 1, 3)
        std = np.array(IMAGENET_STD, dtype=np.float32).reshape(1, 1, 3)
        x = (x / np.float32(255.0) - mean) / std
    else:
        raise ValueError(f"Unknown normalization scheme: {scheme!r}")

    x = np.transpose(x, (2, 0, 1))  # CHW
    return np.ascontiguousarray(x[np.newaxis, ...], dtype=np.float32)  # NCHW


def encode_for_family(img: np.ndarray, family: ModelFamily) -> np.ndarray:
    size = family.target_size
    if img.shape[:2] != (size, size):
        raise ValueError(f"Expected shape ({size},{size},3) for {family.value}, got {img.shape}")
    return encode(img, family.scheme)
