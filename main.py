"""
Consumer number batch extraction: entry point.

Two commands:
  1. run            Extract consumer numbers from every image in an input folder.
  2. retry-pending  Resubmit images left in the pending folder (quota stops, transient outages).
                    Meant to be invoked by an external scheduler such as cron.

Usage:
  python main.py run [--input DIR] [--workers N] [--config PATH] [--output-dir DIR] [--dry-run] [--keep-input]
  python main.py retry-pending [--workers N] [--config PATH] [--output-dir DIR] [--dry-run]

- Images: png, jpg, jpeg, webp. Each ends in exactly one of success / failed / pending folders.
- Output: batch_report_<batch_id>.json in the output dir; one history row per batch in the database.
- --dry-run: only count images; no recognition calls, nothing moved.
- --keep-input: leave source images in the input folder after the run.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from core.exceptions import BillExtractionError, ConfigError
from core.models import BatchReport
from pipeline.engine import ExtractionEngine
from utils.config import AppConfig, load_config
from utils.folder_reader import iter_images
from utils.logger import setup_logging


def save_report(report: BatchReport, output_dir: Path) -> Path:
    """Write the batch report as JSON; returns its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"batch_report_{report.batch_id}.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
    logging.getLogger(__name__).info("Saved batch report to %s", path)
    return path


def print_summary(report: BatchReport, report_path: Path) -> None:
    stats = report.stats()
    print("Batch complete.")
    for key, value in stats.items():
        print(f"  {key}: {value}")
    print(f"  report: {report_path}")


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", default=None, help="YAML config file (default: config.yaml if present)")
    common.add_argument("--workers", "-w", type=int, default=None, help="Concurrent pipelines (default: MAX_WORKERS or 4)")
    common.add_argument("--output-dir", "-o", default=None, help="Directory for batch reports (default: OUTPUT_DIR or output)")
    common.add_argument("--dry-run", action="store_true", help="Only count images; no recognition calls")
    common.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    common.add_argument("--log-file", default=None, help="Also append logs to this file")

    parser = argparse.ArgumentParser(description="Consumer number batch extraction from electricity bill images")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Process every image in the input folder")
    run.add_argument("--input", "-i", default=None, help="Input image folder (default: INPUT_DIR or Images)")
    run.add_argument("--keep-input", action="store_true", help="Do not remove processed input images")

    sub.add_parser("retry-pending", parents=[common], help="Resubmit images in the pending folder")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.workers is not None:
        overrides["max_workers"] = args.workers
    if args.dry_run:
        overrides["dry_run"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    return overrides


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config: AppConfig = load_config(args.config).with_overrides(**_overrides(args)).validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    setup_logging(config.log_level, log_file=args.log_file)
    log = logging.getLogger(__name__)

    if args.command == "run":
        folder = Path(args.input or config.storage.input_dir)
    else:
        folder = Path(config.storage.pending_dir)

    if config.dry_run:
        count = sum(1 for _ in iter_images(folder))
        print(f"Dry run: {count} image(s) in {folder}")
        return 0

    try:
        engine = ExtractionEngine.from_config(config)
        if args.command == "run":
            report = engine.run_folder(folder, keep_input=args.keep_input)
        else:
            report = engine.retry_pending()
    except BillExtractionError as e:
        log.error("Batch failed: %s", e)
        return 1

    report_path = save_report(report, Path(args.output_dir or config.storage.output_dir))
    print_summary(report, report_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
