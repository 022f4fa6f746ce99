"""
Command-line interface for the docs assistant.

Usage:
    docs-assistant ask "How do I read the traffic graph?"
    docs-assistant ingest-docs --base-url https://kiali.io/docs/
    docs-assistant ingest-media "https://www.youtube.com/playlist?list=PL..."
    docs-assistant dedupe
    docs-assistant clean
    docs-assistant stats
"""

import argparse
import dataclasses
import json
import sys
from pathlib import Path

from loguru import logger

from .config import load_settings
from .deadline import Deadline
from .debug_logger import disable_debug_logging, enable_debug_logging
from .engine import build_engine
from .error_classifier import simplify_error
from .errors import AssistantError, ValidationError


def configure_logging(level: str):
    """Route loguru output to stderr so stdout carries only JSON."""
    logger.remove()
    logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} | {level: <8} | {message}")


def load_context_file(path: str):
    """Read the structured context passed to 'ask'."""
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValidationError(f"Could not read context file {path}: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docs-assistant",
        description="Ingest documentation and videos, then answer questions from them",
    )
    parser.add_argument('--debug-logging', action='store_true',
                        help='Enable detailed debug logging to debug_logs/ directory')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Deadline in seconds for the whole command (default: REQUEST_TIMEOUT)')
    parser.add_argument('--config', default=None, help='YAML config file (default: CONFIG_FILE or config.yaml)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    ask = subparsers.add_parser('ask', help='Answer a question from the stored chunks')
    ask.add_argument('query', help='Question text')
    ask.add_argument('--context-file', help='JSON file appended to the prompt as structured context')

    ingest_docs = subparsers.add_parser('ingest-docs', help='Crawl the documentation site')
    ingest_docs.add_argument('--base-url', default=None, help='Crawl seed (default: DOCS_BASE_URL)')

    ingest_media = subparsers.add_parser('ingest-media', help='Ingest videos or playlists')
    ingest_media.add_argument('urls', help='URL or comma-separated URLs')

    subparsers.add_parser('clean', help='Delete every stored document and chunk')
    subparsers.add_parser('dedupe', help='Remove duplicate documents by URL')
    subparsers.add_parser('stats', help='Show configuration and store counts')

    return parser


def run_command(engine, args, deadline: Deadline):
    """Dispatch one sub-command and return its JSON-serializable result."""
    if args.command == 'ask':
        context = load_context_file(args.context_file) if args.context_file else None
        return engine.answer(args.query, context, deadline=deadline).to_dict()
    if args.command == 'ingest-docs':
        return engine.ingest_site(args.base_url, deadline=deadline).to_dict()
    if args.command == 'ingest-media':
        return engine.ingest_media_list(args.urls, deadline=deadline).to_dict()
    if args.command == 'clean':
        return {'removed': engine.clean(deadline=deadline)}
    if args.command == 'dedupe':
        return {'removed': engine.deduplicate(deadline=deadline)}
    if args.command == 'stats':
        return engine.stats()
    raise ValidationError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    debug_logger = None
    engine = None
    try:
        settings = load_settings(args.config)
        if args.timeout is not None:
            settings = dataclasses.replace(settings, request_timeout=args.timeout)
        configure_logging(settings.log_level)

        if args.debug_logging:
            debug_logger = enable_debug_logging()
            logger.success("Debug logging enabled")

        engine = build_engine(settings)
        result = run_command(engine, args, Deadline(settings.request_timeout))
    except AssistantError as e:
        logger.error(f"{args.command} failed: {simplify_error(e)}")
        print(json.dumps({'error': str(e)}))
        return 1
    finally:
        if engine is not None:
            engine.close()
        if debug_logger is not None:
            debug_logger.analyze_logs()
            disable_debug_logging()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
