#!/usr/bin/env python3
from __future__ import annotations
import argparse, json, logging, os

import cv2

from cardscan.core.config import load_config
from cardscan.geometry.crop import crop_all
from cardscan.geometry.detect import CardDetector
from cardscan.io.ingest import load_image, save_image
from cardscan.strategies.base import Capabilities

log = logging.getLogger("visualize_detect")

# BGR per strategy
_COLORS = {
    "external_model": (255, 128, 0),
    "contour_growth": (0, 255, 0),
    "sliding_window": (0, 200, 255),
}


def draw_candidates(img, result):
    vis = img.copy()
    for i, c in enumerate(result.candidates):
        r = c.rect
        color = _COLORS.get(c.source.value, (0, 0, 255))
        cv2.rectangle(vis, (r.x, r.y), (r.right - 1, r.bottom - 1), color, 3, lineType=cv2.LINE_AA)
        cv2.putText(vis, f"#{i} {c.confidence:.2f}", (r.x + 4, max(20, r.y - 8)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2, cv2.LINE_AA)
    if not result.found:
        cv2.putText(vis, "NO DETECTION", (20, 40),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 255), 2, cv2.LINE_AA)
    return vis


def build_capabilities(args) -> Capabilities:
    detector = remover = None
    if args.model:
        from cardscan.models.yolo import UltralyticsDetector
        detector = UltralyticsDetector(args.model, conf=args.conf)
    if args.model and not args.no_bg_removal:
        from cardscan.models.background import RembgBackgroundRemover
        remover = RembgBackgroundRemover()
    return Capabilities(detector=detector, background_remover=remover)


def main(argv=None):
    ap = argparse.ArgumentParser(description="Run cardscan detection on an image, visualize, and crop.")
    ap.add_argument("image", help="Path to input image.")
    ap.add_argument("--config", default=None, help="YAML tuning file (see config/detect.yaml).")
    ap.add_argument("--model", default=None, help="YOLO .pt checkpoint; enables the external-model strategy.")
    ap.add_argument("--conf", type=float, default=0.25, help="Score floor passed to the YOLO model.")
    ap.add_argument("--no-bg-removal", action="store_true", help="Skip rembg before the external model.")
    ap.add_argument("--max-results", type=int, default=None, help="Override the result cap.")
    ap.add_argument("--out_dir", default="tests/output", help="Directory for outputs.")
    ap.add_argument("--debug", action="store_true", help="Enable debug logging in the detector.")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        img = load_image(args.image)
    except FileNotFoundError as e:
        raise SystemExit(str(e))

    cfg = load_config(args.config)
    if args.max_results is not None:
        cfg = cfg.merged({"max_results": args.max_results})

    detector = CardDetector(cfg, build_capabilities(args))
    result = detector.detect(img)
    for f in result.failures:
        log.warning("strategy failed: %s", f)

    os.makedirs(args.out_dir, exist_ok=True)
    base = os.path.splitext(os.path.basename(args.image))[0]

    out_viz = save_image(os.path.join(args.out_dir, f"{base}_viz.png"), draw_candidates(img, result))
    log.info("Saved visualization → %s", out_viz)

    crops = []
    for i, card in enumerate(crop_all(img, result, cfg.output_width, cfg.output_height)):
        p = save_image(os.path.join(args.out_dir, f"{base}_card{i:02d}.png"), card.image)
        crops.append({"path": str(p), "fallback": card.fallback, **card.region.to_dict()})
        log.info("Saved crop → %s", p)

    summary = result.to_dict()
    summary["image"] = args.image
    summary["crops"] = crops
    out_json = os.path.join(args.out_dir, f"{base}_detect.json")
    with open(out_json, "w") as f:
        json.dump(summary, f, indent=2)
    log.info("Saved summary → %s", out_json)
    return 0 if result.found else 1


if __name__ == "__main__":
    raise SystemExit(main())
