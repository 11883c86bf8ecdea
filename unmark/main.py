"""
Unmark CLI

Removes the logo watermark from local image files, either by reverse
alpha blending (exact, fast) or LaMa inpainting.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .config import get_settings
from .errors import UnmarkError
from .metrics import start_metrics_server
from .pipeline import METHOD_BLEND, METHOD_INPAINT, PixelBuffer, WatermarkEngine

logger = logging.getLogger(__name__)
console = Console()

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    global shutdown_requested
    logger.info("Shutdown signal received, finishing current image...")
    shutdown_requested = True


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove logo watermarks from generated images")
    parser.add_argument("inputs", nargs="+", type=Path, help="Images to process")
    parser.add_argument("-o", "--output-dir", type=Path, default=None,
                        help="Where to write cleaned images (default: next to each input)")
    parser.add_argument("-m", "--method", choices=[METHOD_BLEND, METHOD_INPAINT], default=METHOD_BLEND,
                        help="Removal method")
    parser.add_argument("--detect-only", action="store_true", help="Only report detections")
    return parser.parse_args(argv)


def output_path_for(input_path: Path, output_dir: Path | None) -> Path:
    directory = output_dir or input_path.parent
    return directory / f"{input_path.stem}_clean.png"


async def process_images(engine: WatermarkEngine, args: argparse.Namespace) -> list[str]:
    """
    Process every input, returning error messages for failed images.

    A failure on one image is logged and does not stop the batch.
    """
    errors = []
    total = len(args.inputs)

    def log_status(status):
        if status.progress:
            logger.info(f"LaMa: {status.progress}")

    if args.method == METHOD_INPAINT and not args.detect_only:
        engine.inpaint_status.subscribe(log_status)

    for i, input_path in enumerate(args.inputs):
        if shutdown_requested:
            break
        try:
            image = PixelBuffer.open(input_path)

            if args.detect_only:
                match = engine.detect(image)
                console.print(
                    f"{input_path.name}: detected={match.detected} size={match.size} "
                    f"position=({match.x}, {match.y}) confidence={match.confidence:.2f}"
                )
                continue

            result = await engine.remove(image, method=args.method)

            output_path = output_path_for(input_path, args.output_dir)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            result.image.save(output_path)

            logger.info(
                f"Processed {i+1}/{total}: watermark_detected={result.match.detected}, "
                f"confidence={result.match.confidence:.2f}, method={result.method}, "
                f"time={result.elapsed:.2f}s -> {output_path}"
            )

        except (OSError, UnmarkError) as e:
            error_msg = f"Failed to process {input_path}: {e}"
            logger.error(error_msg)
            errors.append(error_msg)

    return errors


def main(argv=None):
    """CLI entry point."""
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    console.print("[bold green]Unmark Watermark Remover[/bold green]")
    console.print(f"Method: {args.method}")
    console.print(f"Images: {len(args.inputs)}")
    console.print("")

    if settings.metrics_port:
        start_metrics_server(settings.metrics_port, provider=settings.device)

    engine = WatermarkEngine(settings)
    try:
        engine.initialize()
    except UnmarkError as e:
        logger.error(f"Failed to initialize engine: {e}")
        sys.exit(1)

    try:
        errors = asyncio.run(process_images(engine, args))
    finally:
        engine.close()

    logger.info(f"Done: {len(args.inputs) - len(errors)} processed, {len(errors)} errors")
    if errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
