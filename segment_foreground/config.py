"""
Centralized configuration constants for the foreground matte pipeline.

Ground rules:
- float32 tensors, NCHW, batch size 1
- forward and inverse resize share one interpolation filter
"""

from __future__ import annotations

import os
from enum import Enum

import cv2

MODNET_TARGET_SIZE = 512
U2NET_TARGET_SIZE = 320

# Letterbox fill. The networks were exported against black borders.
PAD_COLOR = 0

# Lanczos for both the forward resize and the matte restore; mixing filters
# shifts matte edges by a fraction of a pixel.
RESAMPLE_INTERPOLATION = cv2.INTER_LANCZOS4

SYMMETRIC_CENTER = 127.5

IMAGENET_MEAN = [0.485, 0.456, 0.406]
IMAGENET_STD = [0.229, 0.224, 0.225]

MODEL_DIR_ENV = "SEGFG_MODEL_DIR"
MODEL_SUBDIR = "models"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def default_threads() -> int:
    """Intra-op threads handed to the inference engine (env SEGFG_THREADS)."""
    return _env_int("SEGFG_THREADS", 4)


def strict_output_resolution() -> bool:
    """
    When True, a model output whose resolution differs from the encode target
    is rejected instead of having its crop rectangle rescaled.
    """
    return _env_flag("SEGFG_STRICT_RESOLUTION", False)


class NormalizationScheme(Enum):
    """Per-pixel byte -> float mapping expected by a network."""

    SYMMETRIC_UNIT = "symmetric_unit"  # (v - 127.5) / 127.5
    IMAGENET_STATS = "imagenet_stats"  # (v / 255 - mean) / std


class ModelFamily(Enum):
    MODNET = "modnet"
    U2NET = "u2net"

    @property
    def target_size(self) -> int:
        return MODNET_TARGET_SIZE if self is ModelFamily.MODNET else U2NET_TARGET_SIZE

    @property
    def scheme(self) -> NormalizationScheme:
        if self is ModelFamily.MODNET:
            return NormalizationScheme.SYMMETRIC_UNIT
        return NormalizationScheme.IMAGENET_STATS

    @property
    def default_model_file(self) -> str:
        return f"{self.value}.onnx"
