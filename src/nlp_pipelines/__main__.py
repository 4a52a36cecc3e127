"""Command line entry point: run a pipeline over JSON-lines input.

Example:
    nlp-pipelines run --model ./models/ner --type token-classification \
        --input ./data --output ./results
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .all_dataclass import PIPELINE_KINDS, Config
from .models.exceptions import InputOutputError, PipelineError
from .session import Session
from .streaming.driver import StreamDriver
from .utils.file_system import STDIO
from .utils.load_config import load_config
from .utils.project_logger import setup_logger


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nlp-pipelines",
        description="Run transformer pipelines over JSON-lines records"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a pipeline over an input stream")
    run_parser.add_argument("--model", required=True, help="Model directory or s3:// prefix")
    run_parser.add_argument("--type", required=True, choices=PIPELINE_KINDS, help="Pipeline kind")
    run_parser.add_argument(
        "--input",
        default=None,
        help="File, directory or s3:// prefix of .jsonl records, stdin when omitted"
    )
    run_parser.add_argument(
        "--output",
        default=None,
        help="Directory or s3:// prefix for result-<n>.jsonl files, stdout when omitted"
    )
    run_parser.add_argument("--engine", choices=["onnx", "torch"], default=None, help="Override engine from config")
    run_parser.add_argument("--engine-library", default=None, help="Shared library loaded into the engine")
    run_parser.add_argument("--batch-size", type=int, default=None, help="Override batch size from config")
    run_parser.add_argument("--process-workers", type=int, default=None, help="Override process workers from config")
    run_parser.add_argument("--write-workers", type=int, default=None, help="Override write workers from config")
    run_parser.add_argument("--config", default=None, help="Path to YAML config file")
    run_parser.add_argument("--log-level", default=None, help="Override log level from config")
    run_parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    return parser.parse_args(argv)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Return a copy of ``config`` with the command line flags applied."""
    session_overrides = {
        "engine": args.engine,
        "engine_library_path": args.engine_library,
    }
    stream_overrides = {
        "batch_size": args.batch_size,
        "process_workers": args.process_workers,
        "write_workers": args.write_workers,
    }
    logging_overrides = {
        "level": args.log_level,
        "log_file": args.log_file,
    }
    return replace(
        config,
        session=replace(config.session, **{k: v for k, v in session_overrides.items() if v is not None}),
        stream=replace(config.stream, **{k: v for k, v in stream_overrides.items() if v is not None}),
        logging=replace(config.logging, **{k: v for k, v in logging_overrides.items() if v is not None}),
    )


def run(args: argparse.Namespace) -> int:
    try:
        config = apply_overrides(load_config(args.config), args)
    except (PipelineError, FileNotFoundError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(level, int):
        print(f"Invalid log level: {config.logging.level}", file=sys.stderr)
        return 1
    logger = setup_logger(config.logging.log_file, level=level)

    if args.input is None:
        if sys.stdin.isatty():
            logger.error("No --input given and stdin is a terminal, pipe JSON lines or pass --input")
            return 1
        sources = [STDIO]
    else:
        sources = [args.input]

    try:
        session = Session(config, logger=logger)
    except PipelineError as e:
        logger.error(f"Could not create session: {e}")
        return 1

    exit_code = 0
    try:
        if args.input is not None and not session.file_system.exists(args.input):
            raise InputOutputError(f"Input path {args.input} does not exist")
        pipeline = session.new_pipeline(args.type, args.type, args.model)
        driver = StreamDriver(
            pipeline,
            config.stream,
            sources=sources,
            output_dir=args.output,
            file_system=session.file_system,
            logger=logger
        )
        summary = driver.run()
        if summary.errors:
            logger.warning(f"{summary.errors} records could not be processed")
        for line in session.get_stats():
            logger.info(line)
    except PipelineError as e:
        logger.error(f"Run failed: {e}")
        exit_code = 1
    finally:
        try:
            session.destroy()
        except Exception as e:
            logger.error(f"Teardown failed: {e}")
            exit_code = 1
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.command == "run":
        return run(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
