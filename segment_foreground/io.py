from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np

from .errors import ImageDecodeError, ImageEncodeError, ImageReadError


def load_image(path: str) -> np.ndarray:
    """
    Load an image as RGB uint8 ndarray of shape (H, W, 3).
    """
    p = Path(path)
    if not p.is_file():
        raise ImageReadError(str(path), reason="Image file not found")
    try:
        data = p.read_bytes()
    except OSError as e:
        raise ImageReadError(str(path)) from e
    return load_image_from_bytes(data, source=str(path))


def load_image_from_bytes(data: bytes, source: str | None = None) -> np.ndarray:
    if not data:
        raise ImageDecodeError(source, reason="Empty image data")
    bgr = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if bgr is None:
        raise ImageDecodeError(source)
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


def save_matte_png(matte: np.ndarray, out_path: str) -> None:
    """
    Save a single-channel uint8 matte as a lossless grayscale PNG.
    """
    if matte.ndim != 2 or matte.dtype != np.uint8:
        raise ValueError(f"Expected uint8 matte (H,W), got shape={matte.shape} dtype={matte.dtype}")
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    ok, buf = cv2.imencode(".png", matte)
    if not ok:
        raise ImageEncodeError(str(out_path))
    try:
        p.write_bytes(buf.tobytes())
    except OSError as e:
        raise ImageEncodeError(str(out_path), reason="Could not write image") from e
