"""
Error taxonomy for the matte pipeline.

Every error is fatal to a single invocation. Each class also derives from the
closest builtin so callers catching ValueError / RuntimeError / OSError keep
working.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class SegmentForegroundError(Exception):
    """Base class for all pipeline errors."""


class InvalidImageDimensions(SegmentForegroundError, ValueError):
    def __init__(
        self,
        original: Tuple[int, int],
        target: Tuple[int, int],
        computed: Optional[Tuple[int, int]] = None,
    ) -> None:
        self.original = original
        self.target = target
        self.computed = computed
        msg = f"Invalid image dimensions: original (w,h)={original}, target (w,h)={target}"
        if computed is not None:
            msg += f", resized (w,h)={computed}"
        super().__init__(msg)


class InvalidOutputTensor(SegmentForegroundError, RuntimeError):
    """Model output does not satisfy the (B,1,H,W) float contract."""

    def __init__(self, message: str, shape: Optional[Tuple[int, ...]] = None, dtype: Optional[str] = None) -> None:
        self.shape = shape
        self.dtype = dtype
        detail = []
        if shape is not None:
            detail.append(f"shape={shape}")
        if dtype is not None:
            detail.append(f"dtype={dtype}")
        if detail:
            message = f"{message} ({', '.join(detail)})"
        super().__init__(message)


class UnexpectedOutputRank(InvalidOutputTensor):
    def __init__(self, rank: int, shape: Tuple[int, ...]) -> None:
        self.rank = rank
        super().__init__(f"Unexpected output rank {rank}; expected 3 (B,H,W) or 4 (B,C,H,W)", shape=shape)


class PaddingResolutionMismatch(SegmentForegroundError, RuntimeError):
    def __init__(
        self,
        rect: Tuple[int, int, int, int],
        output_size: Tuple[int, int],
        target_size: Tuple[int, int],
        reason: str = "crop rectangle does not fit the model output",
    ) -> None:
        self.rect = rect
        self.output_size = output_size
        self.target_size = target_size
        super().__init__(
            f"{reason}: rect (x,y,w,h)={rect}, output (w,h)={output_size}, encode target (w,h)={target_size}"
        )


class ImageReadError(SegmentForegroundError, OSError):
    def __init__(self, path: str, reason: str = "Could not read image") -> None:
        self.path = path
        super().__init__(f"{reason}: {path}")


class ImageDecodeError(SegmentForegroundError, ValueError):
    def __init__(self, path: Optional[str], reason: str = "Could not decode image") -> None:
        self.path = path
        super().__init__(f"{reason}: {path}" if path else reason)


class ImageEncodeError(SegmentForegroundError, OSError):
    def __init__(self, path: str, reason: str = "Could not encode image") -> None:
        self.path = path
        super().__init__(f"{reason}: {path}")


class ModelNotFoundError(SegmentForegroundError, FileNotFoundError):
    def __init__(self, name: str, candidates: Sequence[str]) -> None:
        self.candidates = list(candidates)
        tried = ", ".join(self.candidates) or "<none>"
        super().__init__(f"Cannot find the model {name} (tried: {tried})")


class ModelLoadError(SegmentForegroundError, RuntimeError):
    def __init__(self, path: str, reason: str = "Failed to load model") -> None:
        self.path = path
        super().__init__(f"{reason}: {path}")
