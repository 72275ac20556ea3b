from __future__ import annotations

import logging
from enum import Enum
from typing import Tuple

import numpy as np

from .errors import InvalidImageDimensions, InvalidOutputTensor, PaddingResolutionMismatch, UnexpectedOutputRank
from .preprocess import PaddingDescriptor, resample, round_half_up

logger = logging.getLogger(__name__)


class OutputRank(Enum):
    THREE_D = 3  # (B,H,W)
    FOUR_D = 4  # (B,C,H,W)

    @classmethod
    def resolve(cls, y: np.ndarray) -> "OutputRank":
        try:
            return cls(y.ndim)
        except ValueError:
            raise UnexpectedOutputRank(y.ndim, tuple(y.shape)) from None


def normalize_output_rank(y: np.ndarray) -> np.ndarray:
    """
    Return a (B,C,H,W) view of a raw model output.

    U2Net exports disagree on whether the channel axis is kept; MODNet always
    returns (1,1,H,W).
    """
    y = np.asarray(y)
    rank = OutputRank.resolve(y)
    if not np.issubdtype(y.dtype, np.floating):
        raise InvalidOutputTensor("Model output is not floating point", shape=tuple(y.shape), dtype=str(y.dtype))

    if rank is OutputRank.THREE_D:
        y4 = y[:, np.newaxis, :, :]
    else:
        y4 = y

    b, c, h, w = y4.shape
    if b == 0 or c == 0 or h == 0 or w == 0:
        raise InvalidOutputTensor("Model output is empty", shape=tuple(y.shape))
    return y4


def tensor_to_matte(y4: np.ndarray) -> np.ndarray:
    """
    Convert batch 0 / channel 0 of a (B,C,H,W) output into a uint8 matte at
    the tensor's own resolution.
    """
    plane = y4[0, 0].astype(np.float32, copy=False)
    if np.isnan(plane).any():
        raise InvalidOutputTensor("NaNs detected in predicted matte", shape=tuple(y4.shape))
    plane = np.clip(plane, 0.0, 1.0)
    return np.floor(plane * np.float32(255.0) + np.float32(0.5)).astype(np.uint8)


def _scaled_rect(padding: PaddingDescriptor, out_w: int, out_h: int) -> Tuple[int, int, int, int]:
    sx = float(out_w) / float(padding.target_width)
    sy = float(out_h) / float(padding.target_height)
    x0 = round_half_up(padding.pad_x * sx)
    y0 = round_half_up(padding.pad_y * sy)
    w = max(1, round_half_up(padding.content_width * sx))
    h = max(1, round_half_up(padding.content_height * sy))
    return x0, y0, w, h


def crop_padding(matte: np.ndarray, padding: PaddingDescriptor, *, strict: bool = False) -> np.ndarray:
    """
    Remove the letterbox border from a model-space matte.

    When the matte resolution differs from the encode target, the crop
    rectangle is rescaled to the matte (or rejected if strict).
    """
    if matte.ndim != 2:
        raise ValueError(f"Expected 2D matte, got shape={matte.shape}")

    out_h, out_w = matte.shape
    target = (padding.target_width, padding.target_height)
    if (out_w, out_h) == target:
        x0, y0, w, h = padding.rect
    elif strict:
        raise PaddingResolutionMismatch(
            padding.rect, (out_w, out_h), target, reason="model output resolution differs from encode target"
        )
    else:
        x0, y0, w, h = _scaled_rect(padding, out_w, out_h)
        logger.warning(
            "Model output %dx%d differs from encode target %dx%d; crop rescaled %s -> %s",
            out_w,
            out_h,
            target[0],
            target[1],
            padding.rect,
            (x0, y0, w, h),
        )

    if x0 < 0 or y0 < 0 or w <= 0 or h <= 0 or x0 + w > out_w or y0 + h > out_h:
        raise PaddingResolutionMismatch((x0, y0, w, h), (out_w, out_h), target)
    return matte[y0 : y0 + h, x0 : x0 + w]


def restore_matte(cropped: np.ndarray, original_width: int, original_height: int) -> np.ndarray:
    if original_width <= 0 or original_height <= 0:
        raise InvalidImageDimensions((original_width, original_height), (cropped.shape[1], cropped.shape[0]))
    return resample(cropped, original_width, original_height)


def decode(
    raw: np.ndarray,
    padding: PaddingDescriptor,
    original_width: int,
    original_height: int,
    *,
    strict: bool = False,
) -> np.ndarray:
    """
    Turn a raw model output back into a matte aligned with the input image.

    Steps:
      1) normalize rank to (B,C,H,W)
      2) clamp/scale/round to uint8 at model resolution
      3) remove padding using the PaddingDescriptor
      4) resize back to (original_width, original_height)
    """
    y4 = normalize_output_rank(raw)
    logger.debug("Model output shape=%s dtype=%s", tuple(np.shape(raw)), y4.dtype)
    matte_full = tensor_to_matte(y4)
    cropped = crop_padding(matte_full, padding, strict=strict)
    return restore_matte(cropped, original_width, original_height)
