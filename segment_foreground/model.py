from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import MODEL_DIR_ENV, MODEL_SUBDIR, ModelFamily, default_threads
from .errors import ModelLoadError, ModelNotFoundError

logger = logging.getLogger(__name__)

TORCHSCRIPT_SUFFIXES = (".pt", ".pth", ".ts")

CPU_PROVIDER = "CPUExecutionProvider"


@dataclass(frozen=True)
class EngineOptions:
    threads: int = field(default_factory=default_threads)
    use_cuda: bool = False
    use_tensorrt: bool = False
    use_directml: bool = False
    device_id: int = 0


def select_providers(
    options: EngineOptions, available: Optional[Sequence[str]] = None
) -> List[Union[str, Tuple[str, Dict[str, Any]]]]:
    """
    Build the ONNX Runtime provider list for the requested accelerators.

    TensorRT is tried first, then CUDA, then DirectML; CPU always closes the
    list so an accelerator that fails at session creation still has a fallback.
    """
    if available is None:
        import onnxruntime as ort

        available = ort.get_available_providers()
    available = set(available)

    requested = [
        (options.use_tensorrt, "TensorrtExecutionProvider"),
        (options.use_cuda, "CUDAExecutionProvider"),
        (options.use_directml, "DmlExecutionProvider"),
    ]
    providers: List[Union[str, Tuple[str, Dict[str, Any]]]] = []
    for wanted, name in requested:
        if not wanted:
            continue
        if name not in available:
            logger.warning("%s requested but not available in this onnxruntime build; skipping", name)
            continue
        providers.append((name, {"device_id": int(options.device_id)}))
    providers.append(CPU_PROVIDER)
    return providers


class OnnxEngine:
    """ONNX Runtime session fed positionally through its first input."""

    def __init__(self, model_path: str, options: Optional[EngineOptions] = None) -> None:
        import onnxruntime as ort

        options = options or EngineOptions()
        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        sess_options.intra_op_num_threads = int(options.threads)

        providers = select_providers(options)
        try:
            self.session = ort.InferenceSession(str(model_path), sess_options, providers=providers)
        except Exception as e:  # noqa: BLE001 - onnxruntime raises its own exception types
            raise ModelLoadError(str(model_path), reason="Failed to load ONNX model") from e

        self.model_path = str(model_path)
        self.input_name = self.session.get_inputs()[0].name
        logger.info(
            "Loaded ONNX model %s (input=%s, providers=%s)",
            model_path,
            self.input_name,
            ",".join(self.session.get_providers()),
        )

    def run(self, x: np.ndarray) -> List[np.ndarray]:
        return list(self.session.run(None, {self.input_name: x}))


def _flatten_outputs(y: Any) -> List[Any]:
    if isinstance(y, dict):
        return [v for item in y.values() for v in _flatten_outputs(item)]
    if isinstance(y, (list, tuple)):
        return [v for item in y for v in _flatten_outputs(item)]
    return [y]


class TorchScriptEngine:
    """
    TorchScript matting model run on CPU in float32.

    Expects a module saved via torch.jit.save; pure state_dict checkpoints
    need the original model code and are rejected.
    """

    def __init__(self, model_path: str, options: Optional[EngineOptions] = None) -> None:
        import torch

        options = options or EngineOptions()
        torch.set_num_threads(max(1, int(options.threads)))
        if options.use_cuda or options.use_tensorrt or options.use_directml:
            logger.warning("Accelerator flags are ignored for TorchScript models; running on CPU")

        try:
            model = torch.jit.load(str(model_path), map_location="cpu")
        except Exception as e:  # noqa: BLE001 - surface a helpful error
            raise ModelLoadError(
                str(model_path),
                reason="Failed to load TorchScript model (export it with torch.jit.save first)",
            ) from e

        model.eval()
        self.model = model.to(dtype=torch.float32)
        self.model_path = str(model_path)
        logger.info("Loaded TorchScript model %s", model_path)

    def run(self, x: np.ndarray) -> List[np.ndarray]:
        import torch

        with torch.no_grad():
            y = self.model(torch.from_numpy(x))
        outputs = []
        for item in _flatten_outputs(y):
            if isinstance(item, torch.Tensor):
                outputs.append(item.detach().to("cpu").float().numpy())
        return outputs


def load_engine(model_path: Union[str, Path], options: Optional[EngineOptions] = None):
    """
    Load an inference engine, picking the adapter from the file suffix.
    """
    options = options or EngineOptions()
    path = Path(model_path)
    if not path.is_file():
        raise ModelNotFoundError(str(model_path), [str(path)])
    if path.suffix.lower() in TORCHSCRIPT_SUFFIXES:
        return TorchScriptEngine(str(path), options)
    return OnnxEngine(str(path), options)


def _script_dir() -> Optional[Path]:
    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0:
        return None
    return Path(argv0).resolve().parent


def model_path_candidates(family: ModelFamily) -> List[Path]:
    name = family.default_model_file
    candidates: List[Path] = []
    env_dir = os.getenv(MODEL_DIR_ENV)
    if env_dir:
        candidates.append(Path(env_dir) / name)
    script_dir = _script_dir()
    if script_dir is not None:
        candidates.append(script_dir / MODEL_SUBDIR / name)
    candidates.append(Path(MODEL_SUBDIR) / name)
    return candidates


def resolve_model_path(family: ModelFamily, explicit: Optional[Union[str, Path]] = None) -> Path:
    """
    Find the model file for a family.

    Order: explicit path, $SEGFG_MODEL_DIR, <script dir>/models, ./models.
    """
    if explicit is not None:
        p = Path(explicit)
        if not p.is_file():
            raise ModelNotFoundError(str(explicit), [str(p)])
        return p

    candidates = model_path_candidates(family)
    for candidate in candidates:
        if candidate.is_file():
            logger.debug("Resolved %s model at %s", family.value, candidate)
            return candidate
    raise ModelNotFoundError(family.default_model_file, [str(c) for c in candidates])
