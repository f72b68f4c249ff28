from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from squirrel_kit import load_class_names, load_pipeline, parse_class_names

from .config import AppConfig, load_app_config
from .logging_utils import configure_logging
from .router import DirectoryRouter

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch a folder for images, detect objects, and route annotated results."
    )
    parser.add_argument("--config", required=True, help="Path to the JSON run config.")
    parser.add_argument("--model", default=None, help="Override model.path (.onnx / .torchscript / .pt).")
    parser.add_argument("--backend", default=None, choices=["onnxruntime", "torchscript"], help="Force backend.")
    parser.add_argument("--imgsz", type=int, default=None, help="Override model.input_size.")
    parser.add_argument("--conf", type=float, default=None, help="Override model.confidence_threshold.")
    parser.add_argument("--nms", type=float, default=None, help="Override model.nms_threshold (IoU cutoff).")
    parser.add_argument("--class-names", default=None, help='Comma-separated class names, e.g. "squirrel,bird".')
    parser.add_argument("--metadata", default=None, help="Class names metadata file (names: id: label).")
    parser.add_argument("--input-dir", default=None, help="Override route.input_directory.")
    parser.add_argument("--output-dir", default=None, help="Override route.output_directory.")
    parser.add_argument("--annotated-dir", default=None, help="Override route.output_annotated_directory.")
    parser.add_argument("--no-detection-dir", default=None, help="Override route.no_detection_directory.")
    parser.add_argument("--failed-dir", default=None, help="Override route.failed_directory.")
    parser.add_argument("--pattern", default=None, help='Override route.file_pattern, e.g. "*.jpg".')
    parser.add_argument("--poll-ms", type=int, default=None, help="Override route.polling_delay_ms.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--device", default="cpu", help="Torch device for the TorchScript backend.")
    parser.add_argument("--log-level", default=None, help="Override logging.level.")
    parser.add_argument("--log-file", default=None, help="Override logging.file.")
    parser.add_argument("--once", action="store_true", help="Process the current folder contents once and exit.")
    parser.add_argument("--max-polls", type=int, default=None, help="Stop after N polls.")
    return parser


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.class_names is not None and args.metadata is not None:
        raise ValueError("Use either --class-names or --metadata, not both.")

    model_changes = {}
    if args.model is not None:
        model_changes["path"] = Path(args.model)
    if args.backend is not None:
        model_changes["backend"] = args.backend
    if args.imgsz is not None:
        model_changes["input_size"] = args.imgsz
    if args.conf is not None:
        model_changes["confidence_threshold"] = args.conf
    if args.nms is not None:
        model_changes["nms_threshold"] = args.nms
    if args.class_names is not None:
        model_changes["class_names"] = parse_class_names(args.class_names)
    if args.metadata is not None:
        model_changes["class_names"] = load_class_names(args.metadata)

    route_changes = {}
    for dest, key in (
        ("input_dir", "input_directory"),
        ("output_dir", "output_directory"),
        ("annotated_dir", "output_annotated_directory"),
        ("no_detection_dir", "no_detection_directory"),
        ("failed_dir", "failed_directory"),
    ):
        value = getattr(args, dest)
        if value is not None:
            route_changes[key] = Path(value)
    if args.pattern is not None:
        route_changes["file_pattern"] = args.pattern
    if args.poll_ms is not None:
        route_changes["polling_delay_ms"] = args.poll_ms

    logging_changes = {}
    if args.log_level is not None:
        logging_changes["level"] = args.log_level.upper()
    if args.log_file is not None:
        logging_changes["file"] = Path(args.log_file)

    return replace(
        config,
        model=replace(config.model, **model_changes) if model_changes else config.model,
        route=replace(config.route, **route_changes) if route_changes else config.route,
        logging=replace(config.logging, **logging_changes) if logging_changes else config.logging,
    )


def _parse_providers(raw: Optional[str]) -> Optional[list]:
    if raw is None:
        return None
    providers = [p.strip() for p in str(raw).split(",") if p.strip()]
    return providers or None


def build_router(config: AppConfig, args: argparse.Namespace) -> DirectoryRouter:
    model = config.model
    logger.info("Loading model from: %s", model.path)
    pipeline = load_pipeline(
        model.path,
        class_names=model.class_names,
        post_cfg=model.post_config(),
        backend=model.backend,
        onnx_providers=_parse_providers(args.onnx_providers),
        torch_device=args.device,
    )
    logger.info(
        "Model loaded (%s): input_size=%d conf=%.2f nms=%.2f classes=%s",
        pipeline.backend_name,
        model.input_size,
        model.confidence_threshold,
        model.nms_threshold,
        ",".join(model.class_names),
    )
    providers = getattr(pipeline.backend, "providers_in_use", None)
    if providers:
        logger.info("ONNX Runtime session providers: %s", ",".join(providers))
    return DirectoryRouter(config.route, pipeline.detect)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.max_polls is not None and args.max_polls < 1:
        parser.error("--max-polls must be >= 1")

    config = apply_cli_overrides(load_app_config(Path(args.config)), args)
    configure_logging(config.logging.level, config.logging.file)

    router = build_router(config, args)
    max_polls = 1 if args.once else args.max_polls
    handled = router.run(max_polls=max_polls)
    logger.info("Done. Files handled: %d", handled)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
