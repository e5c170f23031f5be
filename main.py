#!/usr/bin/env python3
"""
Receipt Pipeline - Main Entry Point.

This is the main entry point for the receipt document-understanding
pipeline. It provides both a command-line interface and programmatic
access to the orchestrator.

Usage:
    Command Line:
        python main.py --input receipt.jpg
        python main.py --input ./receipts/ --output results.json --mode production
        python main.py --input receipt.png --vendor walmart --compare-baseline

    Python:
        from main import run_pipeline
        results = run_pipeline("receipt.jpg")

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import project modules
from config import ConfigurationManager
from receipt_pipeline.models.vendor import VendorType
from receipt_pipeline.utils.exceptions import ReceiptPipelineError
from receipt_pipeline.utils.logger import APP_LOGGER_NAME, get_logger, setup_logger_from_config


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Receipt Document-Understanding Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Process single receipt:
        python main.py --input receipt.jpg

    Process directory concurrently:
        python main.py --input ./receipts/ --output results.json

    Force a vendor and compare against the heuristic parser:
        python main.py --input receipt.jpg --vendor walmart --compare-baseline
        """
    )

    # Input/Output arguments
    parser.add_argument(
        "--input", "-i",
        type=str,
        required=True,
        help="Receipt image, PDF, or directory of receipts"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output JSON file (default: output.directory/output.filename)"
    )

    # Processing options
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )

    parser.add_argument(
        "--mode", "-m",
        choices=["production", "development", "testing"],
        default=None,
        help="Operating mode preset (default: settings file values)"
    )

    parser.add_argument(
        "--compare-baseline",
        action="store_true",
        help="Also run the heuristic parser and report the improvement"
    )

    parser.add_argument(
        "--vendor",
        choices=[vt.value for vt in VendorType],
        default=None,
        help="Skip vendor detection and parse as this vendor"
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Print provider availability and exit"
    )

    # Logging options
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize configuration and logging.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Initialized configuration manager.
    """
    config = ConfigurationManager(args.config)
    logger = setup_logger_from_config()

    if args.debug:
        logging.getLogger(APP_LOGGER_NAME).setLevel(logging.DEBUG)

    logger.info("=" * 60)
    logger.info("RECEIPT PIPELINE")
    logger.info("=" * 60)
    logger.info(f"Version: {config.get('project.version', '1.0.0')}")
    logger.info(f"Input: {args.input}")

    return config


def build_orchestrator(mode: Optional[str] = None):
    """Create an orchestrator for the given operating mode."""
    from receipt_pipeline.orchestrator import PipelineConfig, ReceiptOrchestrator

    pipeline_config = PipelineConfig.for_mode(mode) if mode else PipelineConfig.from_config()
    return ReceiptOrchestrator(pipeline_config)


async def process_inputs(
    orchestrator,
    input_path: Path,
    compare_baseline: bool = False,
    force_vendor: Optional[str] = None
):
    """
    Run the orchestrator over a file or every receipt in a directory.

    Returns:
        List of PipelineResult in input order.
    """
    if input_path.is_dir():
        files = orchestrator.input_handler.collect(input_path)
    else:
        files = [input_path]

    return await orchestrator.process_batch(
        files, compare_baseline=compare_baseline, force_vendor=force_vendor
    )


def run_pipeline(
    input_path: str,
    output_path: Optional[str] = None,
    config_path: Optional[str] = None,
    mode: Optional[str] = None,
    compare_baseline: bool = False,
    force_vendor: Optional[str] = None
):
    """
    Run the receipt pipeline.

    This is the main programmatic entry point.

    Args:
        input_path: Receipt file or directory.
        output_path: JSON output file. Defaults to the configured one.
        config_path: Optional custom configuration file path.
        mode: Operating mode preset.
        compare_baseline: Also run the heuristic parser.
        force_vendor: Skip vendor detection and parse as this vendor.

    Returns:
        Tuple of (results, output file path).

    Example:
        >>> results, path = run_pipeline("receipts/")
        >>> for r in results:
        ...     print(r.data.total_amount)
    """
    ConfigurationManager(config_path)

    from receipt_pipeline.output_handler import OutputHandler

    orchestrator = build_orchestrator(mode)
    results = asyncio.run(
        process_inputs(orchestrator, Path(input_path), compare_baseline, force_vendor)
    )

    saved = OutputHandler().save(results, output_path) if results else None
    return results, saved


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 when every receipt succeeded, 1 otherwise).
    """
    try:
        args = parse_arguments(argv)
        initialize_system(args)
        logger = get_logger(__name__)

        input_path = Path(args.input)
        if not input_path.exists():
            raise FileNotFoundError(f"Input path not found: {input_path}")

        if args.status:
            print(json.dumps(build_orchestrator(args.mode).get_agent_status(), indent=2, default=str))
            return 0

        from receipt_pipeline.output_handler import OutputHandler

        results, saved = run_pipeline(
            input_path=args.input,
            output_path=args.output,
            config_path=args.config,
            mode=args.mode,
            compare_baseline=args.compare_baseline,
            force_vendor=args.vendor,
        )

        if not results:
            logger.error("No files to process")
            return 1

        for result in results:
            print(OutputHandler.summarize(result))

        stats = OutputHandler.statistics(results)
        logger.info("=" * 60)
        logger.info(
            f"Processed {stats['total']} receipts: {stats['succeeded']} succeeded, "
            f"{stats['failed']} failed, total cost ${stats['totalCost']:.4f}"
        )
        logger.info(f"Results written to {saved}")
        logger.info("=" * 60)

        return 0 if stats['failed'] == 0 else 1

    except (FileNotFoundError, ReceiptPipelineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
