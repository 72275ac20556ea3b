from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from .errors import ImageEncodeError


def inject_alpha(rgb: np.ndarray, matte: np.ndarray) -> Image.Image:
    """
    Create a lossless RGBA PIL image from RGB uint8 and a uint8 matte.
    """
    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise ValueError(f"Expected RGB image (H,W,3), got {rgb.shape}")
    if matte.ndim != 2 or matte.shape[:2] != rgb.shape[:2]:
        raise ValueError(f"Matte shape {matte.shape} does not match RGB {rgb.shape[:2]}")
    if matte.dtype != np.uint8:
        raise ValueError(f"Expected uint8 matte, got {matte.dtype}")

    rgba = np.dstack([rgb.astype(np.uint8, copy=False), matte])
    return Image.fromarray(rgba)


def save_rgba_png(img: Image.Image, out_path: str) -> None:
    """
    Save as lossless RGBA PNG.
    """
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    try:
        img.save(str(p), format="PNG", optimize=False)
    except OSError as e:
        raise ImageEncodeError(str(out_path)) from e
