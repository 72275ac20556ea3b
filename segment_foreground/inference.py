from __future__ import annotations

import numpy as np

from .errors import InvalidOutputTensor


def run_engine(engine, x: np.ndarray) -> np.ndarray:
    """
    Forward pass through an opaque engine; only the first output is used.

    `engine` is anything with `run(x) -> sequence of arrays` (see model.py).
    """
    if x.ndim != 4 or x.shape[0] != 1 or x.shape[1] != 3:
        raise ValueError(f"Expected input tensor (1,3,H,W), got {tuple(x.shape)}")
    if x.dtype != np.float32:
        x = x.astype(np.float32)

    outputs = engine.run(x)
    if outputs is None or len(outputs) == 0:
        raise InvalidOutputTensor("Model returned no outputs")

    y = outputs[0]
    if not isinstance(y, np.ndarray):
        raise InvalidOutputTensor(f"Model output is not an array: {type(y).__name__}")
    return y
