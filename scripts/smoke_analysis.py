#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import base64
import sys
import time
from io import BytesIO
from pathlib import Path

import numpy as np
from PIL import Image

from shelfsight.config import AnalysisConfig, merge_analysis_config
from shelfsight.pipeline.orchestrator import AnalysisOrchestrator
from shelfsight.pipeline.types import ImageInput


def build_package(width: int, height: int, tick: int) -> bytes:
    """Generate a deterministic synthetic package shot with a bright label block."""
    x = np.linspace(0.0, 1.0, width, dtype=np.float32)
    y = np.linspace(0.0, 1.0, height, dtype=np.float32)
    xx, yy = np.meshgrid(x, y)

    shift = (tick % 10) / 10.0
    r = 0.25 + 0.2 * xx
    g = 0.3 + 0.2 * yy
    b = np.full_like(xx, 0.35 + 0.3 * shift)
    arr = np.stack([r, g, b], axis=-1)

    top, left = int(height * 0.2), int(width * (0.2 + 0.3 * shift))
    arr[top : top + height // 5, left : left + width // 3] = (0.95, 0.85, 0.1)

    arr_uint8 = np.clip(arr * 255.0, 0, 255).astype(np.uint8)
    out = BytesIO()
    Image.fromarray(arr_uint8).save(out, format="PNG")
    return out.getvalue()


async def run(args: argparse.Namespace) -> int:
    config = merge_analysis_config(
        AnalysisConfig(),
        {"seed": args.seed, "scoring": {"mode": "remote" if args.remote else "fallback"}},
    )
    orchestrator = AnalysisOrchestrator.from_config(config)

    images = [
        ImageInput(image_id=f"synthetic-{index}", reference=build_package(args.width, args.height, index), mime_type="image/png")
        for index in range(args.images)
    ]
    if args.broken:
        images.append(ImageInput(image_id="broken", reference=b"not an image"))

    start = time.perf_counter()
    results = await orchestrator.analyze_batch(images)
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    for result in results:
        print(
            f"image={result.image_id} heatmap={result.heatmap_source} scoring={result.scoring_source} "
            f"overall={result.overall_score} suggestions={len(result.suggestions)}"
        )
    print(f"batch latency: {elapsed_ms:.2f} ms")

    if args.save and results:
        output_path = Path(args.save).expanduser().resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = results[0].heatmap_src.partition(",")[2]
        output_path.write_bytes(base64.b64decode(payload))
        print(f"saved heatmap: {output_path}")

    if args.require_saliency and any(r.heatmap_source != "saliency" for r in results if r.image_id != "broken"):
        print("ERROR: saliency path did not produce every heatmap", file=sys.stderr)
        return 2

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test for the packaging attention pipeline")
    parser.add_argument("--images", type=int, default=3, help="Number of synthetic images to analyze")
    parser.add_argument("--width", type=int, default=320)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--remote", action="store_true", help="Use remote scoring instead of forced fallback")
    parser.add_argument("--broken", action="store_true", help="Append an undecodable image to the batch")
    parser.add_argument("--save", type=str, default="", help="Optional path for the first heatmap JPEG")
    parser.add_argument(
        "--require-saliency",
        action="store_true",
        help="Fail if any valid image fell back from the saliency heatmap",
    )
    return asyncio.run(run(parser.parse_args()))


if __name__ == "__main__":
    raise SystemExit(main())
