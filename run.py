from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from tqdm import tqdm

from segment_foreground import config
from segment_foreground.config import ModelFamily
from segment_foreground.errors import SegmentForegroundError
from segment_foreground.model import EngineOptions
from segment_foreground.pipeline import load_model_default, process_image

logger = logging.getLogger("segment_foreground")

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}


def _iter_images(input_dir: Path):
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in IMAGE_EXTS:
            yield p


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Foreground matte extraction with MODNet or U2Net (batch=1).")
    parser.add_argument(
        "--model",
        "-m",
        default=ModelFamily.MODNET.value,
        choices=[f.value for f in ModelFamily],
        help="modnet: human subjects (512px). u2net: general salient objects (320px).",
    )
    parser.add_argument("--input", "-i", required=True, type=str, help="Input image file or directory.")
    parser.add_argument(
        "--output",
        "-o",
        default="matte.png",
        type=str,
        help="Output PNG path, or output directory when --input is a directory.",
    )
    parser.add_argument("--model-path", default=None, type=str, help="Explicit model file (.onnx or TorchScript).")
    parser.add_argument("--threads", default=config.default_threads(), type=int, help="Intra-op threads for the engine.")
    parser.add_argument("--use-cuda", action="store_true", help="Try the CUDA execution provider.")
    parser.add_argument(
        "--use-tensorrt",
        action="store_true",
        help="Try the TensorRT execution provider (preferred over CUDA when both are set).",
    )
    parser.add_argument("--use-directml", action="store_true", help="Try the DirectML execution provider.")
    parser.add_argument("--device-id", "-d", default=0, type=int, help="GPU id for CUDA/TensorRT/DirectML.")
    parser.add_argument(
        "--strict-resolution",
        action=argparse.BooleanOptionalAction,
        default=config.strict_output_resolution(),
        help="Fail when the model output resolution differs from its input size instead of rescaling the crop "
        "(default from SEGFG_STRICT_RESOLUTION).",
    )
    parser.add_argument("--rgba-dir", default=None, type=str, help="Also write RGBA cut-outs into this directory.")
    parser.add_argument("--keep-going", action="store_true", help="Log failures and continue with the next image.")
    parser.add_argument("--log-level", default="INFO", type=str, help="Logging level (DEBUG, INFO, WARNING, ...).")
    return parser


def _jobs(input_path: Path, output_path: Path):
    if input_path.is_dir():
        for img_path in _iter_images(input_path):
            rel = img_path.relative_to(input_path)
            yield img_path, (output_path / rel).with_suffix(".png"), rel.with_suffix(".png")
    else:
        yield input_path, output_path, Path(output_path.name)


def main(argv=None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    output_path = Path(args.output)
    if not input_path.exists():
        raise FileNotFoundError(f"Input not found: {input_path}")

    family = ModelFamily(args.model)
    options = EngineOptions(
        threads=args.threads,
        use_cuda=args.use_cuda,
        use_tensorrt=args.use_tensorrt,
        use_directml=args.use_directml,
        device_id=args.device_id,
    )
    engine = load_model_default(family, args.model_path, options)

    jobs = list(_jobs(input_path, output_path))
    if not jobs:
        print(f"No images found under {input_path}")
        return 0

    failures = 0
    total0 = time.perf_counter()
    for img_path, out_path, rel in tqdm(jobs, desc="Matting", unit="img", disable=len(jobs) == 1):
        rgba_path = str(Path(args.rgba_dir) / rel) if args.rgba_dir else None
        try:
            timings = process_image(
                str(img_path),
                str(out_path),
                engine,
                family,
                strict=args.strict_resolution,
                rgba_path=rgba_path,
            )
        except SegmentForegroundError as e:
            if not args.keep_going:
                raise
            failures += 1
            logger.error("%s: %s", img_path, e)
            continue

        print(
            f"{img_path.name}: total={timings.total_s:.3f}s "
            f"(pre={timings.preprocess_s:.3f}s inf={timings.inference_s:.3f}s "
            f"post={timings.postprocess_s:.3f}s save={timings.save_s:.3f}s) -> {out_path}"
        )

    total1 = time.perf_counter()
    print(f"Done. {len(jobs) - failures}/{len(jobs)} images in {total1-total0:.2f}s")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
