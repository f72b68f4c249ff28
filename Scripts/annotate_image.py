import argparse
import json
from pathlib import Path

from squirrel_kit import (
    PostprocessConfig,
    annotate_image,
    load_class_names,
    load_pipeline,
    parse_class_names,
)
from squirrel_kit.visualize import decode_image


def main() -> int:
    parser = argparse.ArgumentParser(description="Run detection on one image and save the annotated copy.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument("--model", required=True, help="Path to a YOLOv8 model (.onnx/.torchscript/.pt).")
    names = parser.add_mutually_exclusive_group(required=True)
    names.add_argument("--class-names", default=None, help='Comma-separated class names, e.g. "squirrel".')
    names.add_argument("--metadata", default=None, help="Class names metadata file (names: id: label).")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size (square).")
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold.")
    parser.add_argument("--nms", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    parser.add_argument("--out", default=None, help="Output path for the annotated image.")
    parser.add_argument("--json", action="store_true", help="Print detections as JSON.")
    args = parser.parse_args()

    class_names = load_class_names(args.metadata) if args.metadata else parse_class_names(args.class_names)
    pipeline = load_pipeline(
        args.model,
        class_names=class_names,
        post_cfg=PostprocessConfig(input_size=args.imgsz, confidence_threshold=args.conf, nms_threshold=args.nms),
        backend=args.backend,
    )

    image_path = Path(args.image)
    original = image_path.read_bytes()
    detections = pipeline(decode_image(original))
    result = annotate_image(original, detections)

    out_path = Path(args.out) if args.out else image_path.with_name(f"{image_path.stem}_annotated{image_path.suffix}")
    out_path.write_bytes(result.image_bytes)

    if args.json:
        print(json.dumps([d.as_dict() for d in result.detections], indent=2))
    else:
        for det in result.detections:
            print(det.class_name, f"{det.score:.4f}", det.box.as_xywh())
    print(f"{result.glyphs} {result.detection_count} detection(s) -> {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
