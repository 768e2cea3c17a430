"""
Entry point for running one pipeline invocation.

Usage:
    # Process due jobs from the queue
    python -m wardrobe_pipeline --pipeline image-cleanup --batch-size 5

    # Process a single item
    python -m wardrobe_pipeline --pipeline attribute-detection --item-id 42

    # Reset stuck jobs, then process the queue
    python -m wardrobe_pipeline --pipeline image-cleanup --recover-stale --batch-size 10

    # Expose Prometheus metrics while running
    python -m wardrobe_pipeline --pipeline image-cleanup --metrics-port 8000

Feature flags:
    WARDROBE_IMAGE_CLEANUP_ENABLED / WARDROBE_AI_ATTRIBUTES_ENABLED must be set
    to a truthy value, otherwise items are marked skipped and the queue is
    left untouched.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from prometheus_client import start_http_server

from core.errors import ConfigurationError
from core.logging import generate_correlation_id, get_logger, set_log_context, setup_logging
from wardrobe_pipeline.config import PIPELINES, PipelineConfig
from wardrobe_pipeline.factory import create_service
from wardrobe_pipeline.schemas.results import InvocationRequest, RunResult

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a wardrobe background job pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m wardrobe_pipeline --pipeline image-cleanup
    python -m wardrobe_pipeline --pipeline attribute-detection --item-id 42
    python -m wardrobe_pipeline --pipeline image-cleanup --recover-stale
        """,
    )

    parser.add_argument(
        "--pipeline",
        choices=PIPELINES,
        required=True,
        help="Which pipeline to run",
    )

    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--item-id",
        type=str,
        default=None,
        help="Process a single item (direct mode)",
    )
    target.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Max jobs to process from the queue (capped by batch_size_cap)",
    )

    parser.add_argument(
        "--recover-stale",
        action="store_true",
        help="Reset jobs stuck in processing before doing other work",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: ./config.yaml at the repo root)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )

    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Log to the console only",
    )

    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics server (default: disabled)",
    )

    return parser.parse_args(argv)


async def run(config: PipelineConfig, request: InvocationRequest, correlation_id: str) -> RunResult:
    """Run one invocation and release provider sessions."""
    async with create_service(config) as service:
        return await service.invoke(request, correlation_id=correlation_id)


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for configuration errors)
    """
    global logger

    load_dotenv()
    args = parse_args(argv)

    # JSON logs: controlled via JSON_LOGS env var (default: true)
    json_logs = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes")
    log_dir = Path(args.log_dir or os.getenv("LOG_DIR", "logs"))

    setup_logging(
        name="wardrobe_pipeline",
        pipeline=args.pipeline,
        log_dir=log_dir,
        json_format=json_logs,
        console_level=getattr(logging, args.log_level),
        worker_id=os.getenv("WORKER_ID"),
        log_to_file=not args.no_log_file,
    )
    logger = get_logger(__name__)

    correlation_id = generate_correlation_id()
    set_log_context(correlation_id=correlation_id, pipeline=args.pipeline)

    try:
        config = PipelineConfig.load_config(args.pipeline, config_path=args.config)
        config.validate(require_credentials=True)
        request = InvocationRequest(
            item_id=args.item_id,
            batch_size=args.batch_size,
            recover_stale=args.recover_stale,
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid arguments: {e}")
        return 1

    if args.metrics_port:
        logger.info(f"Starting metrics server on port {args.metrics_port}")
        start_http_server(args.metrics_port)

    if not config.enabled:
        logger.info(f"Pipeline {args.pipeline} is disabled by feature flag")

    try:
        result = asyncio.run(run(config, request, correlation_id))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        return 130

    print(json.dumps(result.to_response(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
