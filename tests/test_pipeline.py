from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest
from PIL import Image

from segment_foreground.config import ModelFamily
from segment_foreground.errors import ImageDecodeError, ImageReadError, InvalidOutputTensor, PaddingResolutionMismatch
from segment_foreground.pipeline import StageTimings, predict_matte, process_image


class _FakeEngine:
    """Stands in for an inference session: records inputs, returns canned outputs."""

    def __init__(self, out_size: Optional[int] = None, rank: int = 4, value: float = 1.0, extra_outputs: int = 0):
        self.out_size = out_size
        self.rank = rank
        self.value = value
        self.extra_outputs = extra_outputs
        self.inputs: List[np.ndarray] = []

    def run(self, x: np.ndarray) -> List[np.ndarray]:
        self.inputs.append(x)
        size = self.out_size or x.shape[-1]
        shape = (1, 1, size, size) if self.rank == 4 else (1, size, size)
        outputs = [np.full(shape, self.value, dtype=np.float32)]
        outputs += [np.zeros(shape, dtype=np.float32) for _ in range(self.extra_outputs)]
        return outputs


def _write_dummy_image(path: Path, size=(64, 48), color=(200, 100, 50)) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(str(path), format="PNG")


@pytest.mark.parametrize("family,target", [(ModelFamily.MODNET, 512), (ModelFamily.U2NET, 320)])
def test_predict_matte_feeds_family_tensor(family, target):
    engine = _FakeEngine()
    rgb = np.full((53, 37, 3), 90, dtype=np.uint8)

    matte = predict_matte(rgb, engine, family)

    assert matte.shape == (53, 37)
    assert matte.dtype == np.uint8
    assert (matte == 255).all()
    (x,) = engine.inputs
    assert x.shape == (1, 3, target, target)
    assert x.dtype == np.float32


def test_modnet_letterbox_is_minus_one():
    engine = _FakeEngine()
    predict_matte(np.full((480, 640, 3), 128, dtype=np.uint8), engine, ModelFamily.MODNET)
    x = engine.inputs[0]
    assert np.all(x[:, :, :64, :] == -1.0)
    assert np.allclose(x[:, :, 64:448, :], 0.5 / 127.5, rtol=1e-5)


def test_rank3_output_and_extra_outputs_are_handled():
    engine = _FakeEngine(rank=3, extra_outputs=2)
    matte = predict_matte(np.zeros((10, 20, 3), dtype=np.uint8), engine, ModelFamily.U2NET)
    assert matte.shape == (10, 20)
    assert (matte == 255).all()


def test_output_resolution_mismatch(monkeypatch):
    rgb = np.zeros((30, 40, 3), dtype=np.uint8)
    engine = _FakeEngine(out_size=288)

    with pytest.raises(PaddingResolutionMismatch):
        predict_matte(rgb, engine, ModelFamily.U2NET, strict=True)

    matte = predict_matte(rgb, engine, ModelFamily.U2NET, strict=False)
    assert matte.shape == (30, 40)
    assert (matte == 255).all()

    # strict=None falls back to SEGFG_STRICT_RESOLUTION
    monkeypatch.setenv("SEGFG_STRICT_RESOLUTION", "1")
    with pytest.raises(PaddingResolutionMismatch):
        predict_matte(rgb, engine, ModelFamily.U2NET)


def test_engine_without_outputs():
    class _Empty:
        def run(self, x):
            return []

    with pytest.raises(InvalidOutputTensor):
        predict_matte(np.zeros((8, 8, 3), dtype=np.uint8), _Empty(), ModelFamily.MODNET)


def test_pipeline_keeps_no_state_between_calls():
    engine = _FakeEngine()
    a = predict_matte(np.zeros((10, 30, 3), dtype=np.uint8), engine, ModelFamily.MODNET)
    b = predict_matte(np.zeros((40, 20, 3), dtype=np.uint8), engine, ModelFamily.MODNET)
    assert a.shape == (10, 30)
    assert b.shape == (40, 20)


def test_process_image_writes_matte_and_rgba(tmp_path: Path):
    img_path = tmp_path / "in" / "p.png"
    _write_dummy_image(img_path, size=(64, 48))
    out_path = tmp_path / "out" / "nested" / "p.png"
    rgba_path = tmp_path / "rgba" / "p.png"

    timings = process_image(
        str(img_path),
        str(out_path),
        _FakeEngine(value=0.5),
        ModelFamily.MODNET,
        rgba_path=str(rgba_path),
    )

    assert isinstance(timings, StageTimings)
    assert timings.total_s >= timings.inference_s >= 0.0

    matte = Image.open(out_path)
    assert matte.mode == "L"
    assert matte.size == (64, 48)
    assert set(np.unique(np.asarray(matte)).tolist()) == {128}

    rgba = Image.open(rgba_path)
    assert rgba.mode == "RGBA"
    assert rgba.size == (64, 48)
    assert np.asarray(rgba)[0, 0].tolist() == [200, 100, 50, 128]


def test_process_image_read_errors(tmp_path: Path):
    with pytest.raises(ImageReadError) as exc:
        process_image(str(tmp_path / "missing.png"), str(tmp_path / "o.png"), _FakeEngine(), ModelFamily.MODNET)
    assert isinstance(exc.value, OSError)
    assert exc.value.path.endswith("missing.png")

    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not an image")
    with pytest.raises(ImageDecodeError):
        process_image(str(bad), str(tmp_path / "o.png"), _FakeEngine(), ModelFamily.MODNET)


@pytest.mark.parametrize("runner_name,target", [("run_modnet", 512), ("run_u2net", 320)])
def test_family_runners(monkeypatch, tmp_path: Path, runner_name, target):
    from segment_foreground import pipeline as pipeline_mod

    engine = _FakeEngine()
    monkeypatch.setattr(pipeline_mod, "load_engine", lambda path, options: engine)
    model_file = tmp_path / "model.onnx"
    model_file.write_bytes(b"x")
    img_path = tmp_path / "in.png"
    _write_dummy_image(img_path, size=(20, 10))
    out_path = tmp_path / "matte.png"

    getattr(pipeline_mod, runner_name)(str(model_file), str(img_path), str(out_path))

    assert engine.inputs[0].shape == (1, 3, target, target)
    assert Image.open(out_path).size == (20, 10)


def test_grayscale_file_loads_as_rgb(tmp_path: Path):
    from segment_foreground.io import load_image

    path = tmp_path / "gray.png"
    Image.new("L", (12, 7), 90).save(str(path), format="PNG")

    rgb = load_image(str(path))

    assert rgb.shape == (7, 12, 3)
    assert rgb.dtype == np.uint8
    assert (rgb == 90).all()
