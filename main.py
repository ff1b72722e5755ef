"""cloudray: CLI entry point.

Runs the light, angle and eye passes for every option set of a
configuration and writes framebuffers, cache maps and statistics.

Usage
-----
    python main.py
    python main.py --config config/default_config.yaml --max-depth 3
    python main.py --dump-pixel 60 80 --log-level DEBUG
    python main.py --plot-only --output output
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="cloudray",
        description="cloudray: precomputed radiance cache ray tracer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py\n"
            "  python main.py --max-depth 3 --no-plots\n"
            "  python main.py --dump-pixel 60 80\n"
            "  python main.py --plot-only --output output\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/default_config.yaml",
        help="Path to render config YAML (default: config/default_config.yaml)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory for images and data (default: from config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Override backward recursion depth for every option set",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        default=False,
        help="Do not write .npy arrays and metadata",
    )
    parser.add_argument(
        "--no-plots",
        action="store_true",
        default=False,
        help="Do not write PNG images",
    )
    parser.add_argument(
        "--dump-pixel",
        type=int,
        nargs=2,
        action="append",
        metavar=("ROW", "COL"),
        default=None,
        help="Record and log the eye ray tree of a pixel (repeatable)",
    )
    parser.add_argument(
        "--plot-only",
        action="store_true",
        default=False,
        help="Skip rendering; re-plot images from existing saved data",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main render entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger = logging.getLogger("cloudray")
    logger.info("=" * 60)
    logger.info("  cloudray: radiance cache ray tracer")
    logger.info("=" * 60)

    from tracer.constants import load_config, log_platform_info

    config = load_config(Path(args.config))
    output_dir = Path(args.output if args.output is not None else config.output.directory)

    if args.plot_only:
        logger.info("Plot-only mode: loading saved data from %s/", output_dir)
        from visualization.plotter import plot_from_saved_data

        saved = plot_from_saved_data(output_dir, dpi=config.output.dpi)
        logger.info("Re-plotted %d images", len(saved))
        return 0

    log_platform_info()

    if args.max_depth is not None:
        if args.max_depth < 0:
            logger.error("--max-depth cannot be negative")
            return 2
        config.options = [dataclasses.replace(o, max_depth=args.max_depth) for o in config.options]
    if args.dump_pixel:
        pixels = tuple((row, col) for row, col in args.dump_pixel)
        config.output = dataclasses.replace(config.output, dump_pixels=pixels)

    from rendering.runner import RenderRunner

    runner = RenderRunner(config)
    results = runner.run(
        save_data=config.output.save_arrays and not args.no_save,
        output_dir=output_dir,
    )

    saved: list[Path] = []
    if config.output.save_plots and not args.no_plots:
        from visualization.plotter import generate_all_plots

        logger.info("Generating plots → %s/", output_dir)
        saved = generate_all_plots(
            results.framebuffers,
            results.irradiance,
            results.angles,
            passes=results.metadata["passes"],
            output_dir=output_dir,
            dpi=config.output.dpi,
        )

    logger.info("=" * 60)
    logger.info("  RENDER COMPLETE")
    logger.info("=" * 60)
    logger.info("  Passes: %d", len(results.passes))
    logger.info("  Total rays: %d", results.metadata["total_rays"])
    logger.info("  Wall time: %.1f s", results.metadata.get("wall_time_s", 0))
    logger.info("  Output files (%d):", len(saved))
    for p in saved:
        logger.info("    → %s", p)
    logger.info("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
