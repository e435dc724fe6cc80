"""
Command line entry point: extract one resource category and deliver it
"""

import argparse
import asyncio
import json
import logging
import shlex
import signal
import sys
from typing import Any, Dict, List, Optional

from core.config import Settings, PipelineConfig, build_pipeline_config, load_settings
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from ingestion.base import RecordSource
from ingestion.extractors.api_extractor import APISource
from ingestion.extractors.command_extractor import CommandSource
from ingestion.extractors.file_extractor import JSONFileSource, CSVFileSource
from ingestion.runner import PipelineRunner
from models.run_report import RunReport, EXIT_CONFIGURATION_ERROR

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inventory-ingest",
        description="Extract cloud resource inventory and deliver it to an HTTP event collector",
    )
    parser.add_argument("resource", help="Resource category, e.g. compute-instances")

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="JSON or NDJSON file with records")
    source.add_argument("--csv", help="CSV file with records")
    source.add_argument("--command", help="CLI command printing JSON records, e.g. 'gcloud compute instances list --format=json'")
    source.add_argument("--api-url", help="Management API list endpoint")

    parser.add_argument("--api-key", default=None, help="Bearer token for --api-url")

    endpoint = parser.add_argument_group("endpoint")
    endpoint.add_argument("--url", dest="HEC_URL", default=None)
    endpoint.add_argument("--token", dest="HEC_TOKEN", default=None)
    endpoint.add_argument("--auth-scheme", dest="HEC_AUTH_SCHEME", default=None)
    endpoint.add_argument("--index", dest="HEC_INDEX", default=None)
    endpoint.add_argument("--insecure", dest="TLS_INSECURE", action="store_const", const=True, default=None,
                          help="Disable TLS certificate verification")
    endpoint.add_argument("--timeout", dest="REQUEST_TIMEOUT", type=float, default=None)

    routing = parser.add_argument_group("routing")
    routing.add_argument("--host", dest="HOST", default=None)
    routing.add_argument("--sourcetype", default=None)
    routing.add_argument("--timestamp-field", default=None)
    routing.add_argument("--timestamp-format", default=None,
                         help="iso8601 (default), epoch, or a strptime pattern")

    delivery = parser.add_argument_group("delivery")
    delivery.add_argument("--batch-bytes", dest="MAX_BATCH_BYTES", type=int, default=None)
    delivery.add_argument("--batch-events", dest="MAX_BATCH_EVENTS", type=int, default=None)
    delivery.add_argument("--max-retries", dest="MAX_RETRIES", type=int, default=None)
    delivery.add_argument("--max-in-flight", dest="MAX_IN_FLIGHT", type=int, default=None)
    delivery.add_argument("--fail-fast", dest="FAIL_FAST", action="store_const", const=True, default=None)
    delivery.add_argument("--stage-dir", dest="STAGE_DIR", default=None)

    parser.add_argument("--json", action="store_true", help="Print the run report as JSON")
    parser.add_argument("--log-level", default=None)
    return parser


def settings_overrides(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    """Translate command line flags into Settings field overrides."""
    overrides = {
        key: value for key, value in vars(args).items()
        if key.isupper() and value is not None
    }

    per_resource = (
        ("SOURCETYPE_MAP", args.sourcetype),
        ("TIMESTAMP_FIELDS", args.timestamp_field),
        ("TIMESTAMP_FORMATS", args.timestamp_format),
    )
    for setting, value in per_resource:
        if value is not None:
            overrides[setting] = {**getattr(settings, setting), args.resource: value}

    return overrides


def build_source(args: argparse.Namespace, config: PipelineConfig) -> RecordSource:
    if args.file:
        return JSONFileSource(args.resource, args.file)
    if args.csv:
        return CSVFileSource(args.resource, args.csv)
    if args.command:
        return CommandSource(args.resource, shlex.split(args.command))
    return APISource(
        args.resource,
        args.api_url,
        api_key=args.api_key,
        max_retries=config.max_attempts,
        retry_delay=config.retry_delay,
        timeout=config.endpoint.timeout,
    )


async def run_pipeline(config: PipelineConfig, source: RecordSource) -> RunReport:
    """Run the pipeline with SIGINT/SIGTERM mapped to graceful cancellation."""
    runner = PipelineRunner(config)
    loop = asyncio.get_running_loop()
    installed: List[int] = []

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / outside the main thread
            pass

    try:
        return await runner.run(source)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        setup_logging(args.log_level or settings.LOG_LEVEL)
        config = build_pipeline_config(settings, args.resource, settings_overrides(args, settings))
    except ConfigurationError as e:
        setup_logging(args.log_level)
        logger.error(str(e))
        print(f"Configuration error: {e.message} ({e.context})", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    source = build_source(args, config)
    report = asyncio.run(run_pipeline(config, source))

    if args.json:
        print(json.dumps(report.to_summary_dict(), indent=2))
    else:
        print(report.summary())

    return report.exit_code


def console_main():
    sys.exit(main())


if __name__ == "__main__":
    console_main()
