from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from . import config
from .composite import inject_alpha, save_rgba_png
from .config import ModelFamily
from .inference import run_engine
from .io import load_image, save_matte_png
from .model import EngineOptions, load_engine, resolve_model_path
from .postprocess import decode
from .preprocess import encode_for_family, resize_with_padding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageTimings:
    preprocess_s: float
    inference_s: float
    postprocess_s: float
    save_s: float
    total_s: float


def _predict_timed(
    rgb: np.ndarray,
    engine,
    family: ModelFamily,
    strict: Optional[bool],
) -> Tuple[np.ndarray, float, float, float]:
    if strict is None:
        strict = config.strict_output_resolution()
    orig_h, orig_w = rgb.shape[:2]
    size = family.target_size

    t_pre0 = time.perf_counter()
    padded, padding = resize_with_padding(rgb, size, size)
    x = encode_for_family(padded, family)
    t_pre1 = time.perf_counter()

    raw = run_engine(engine, x)
    t_inf1 = time.perf_counter()

    matte = decode(raw, padding, orig_w, orig_h, strict=strict)
    t_post1 = time.perf_counter()

    logger.debug("%s: %dx%d -> padding %s", family.value, orig_w, orig_h, padding.to_dict())
    return matte, t_pre1 - t_pre0, t_inf1 - t_pre1, t_post1 - t_inf1


def predict_matte(
    rgb: np.ndarray,
    engine,
    family: ModelFamily,
    *,
    strict: Optional[bool] = None,
) -> np.ndarray:
    """
    Deterministic, linear pipeline on an in-memory RGB image:
      1) resize with padding to the family's square target
      2) encode with the family's normalization
      3) inference (first output only)
      4) decode back to a uint8 matte of the input's size
    """
    matte, _, _, _ = _predict_timed(rgb, engine, family, strict)
    return matte


def process_image(
    image_path: str,
    out_path: str,
    engine,
    family: ModelFamily,
    *,
    strict: Optional[bool] = None,
    rgba_path: Optional[str] = None,
) -> StageTimings:
    """
    Load -> predict -> save the grayscale matte (and optionally an RGBA cut-out).
    """
    t0 = time.perf_counter()
    rgb = load_image(image_path)
    t_load = time.perf_counter() - t0

    matte, pre_s, inf_s, post_s = _predict_timed(rgb, engine, family, strict)

    t_save0 = time.perf_counter()
    save_matte_png(matte, out_path)
    if rgba_path is not None:
        save_rgba_png(inject_alpha(rgb, matte), rgba_path)
    t1 = time.perf_counter()

    return StageTimings(
        preprocess_s=t_load + pre_s,
        inference_s=inf_s,
        postprocess_s=post_s,
        save_s=t1 - t_save0,
        total_s=t1 - t0,
    )


def load_model_default(
    family: ModelFamily,
    model_path: Optional[str] = None,
    options: Optional[EngineOptions] = None,
):
    path = resolve_model_path(family, model_path)
    return load_engine(path, options)


def run_modnet(
    model_path: Optional[str],
    input_path: str,
    output_path: str,
    options: Optional[EngineOptions] = None,
    *,
    strict: Optional[bool] = None,
) -> StageTimings:
    """MODNet (human matting): 512x512 input, [-1,1] normalization."""
    engine = load_model_default(ModelFamily.MODNET, model_path, options)
    timings = process_image(input_path, output_path, engine, ModelFamily.MODNET, strict=strict)
    logger.info("Saved MODNet alpha to %s", output_path)
    return timings


def run_u2net(
    model_path: Optional[str],
    input_path: str,
    output_path: str,
    options: Optional[EngineOptions] = None,
    *,
    strict: Optional[bool] = None,
) -> StageTimings:
    """U2Net (salient object): 320x320 input, ImageNet normalization."""
    engine = load_model_default(ModelFamily.U2NET, model_path, options)
    timings = process_image(input_path, output_path, engine, ModelFamily.U2NET, strict=strict)
    logger.info("Saved U2Net alpha to %s", output_path)
    return timings
