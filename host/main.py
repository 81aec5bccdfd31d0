"""
Main entry point for a command-line chat session.
Resolves configuration, probes the agent server, streams one turn (or replays
a recorded stream) through a StreamSession and prints the reconciled
conversation as JSON.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from activity.listener import StreamListener
from activity.replay import ReplayEventSource
from host.config import DEFAULT_API_URL, DEFAULT_ASSISTANT_ID, load_settings, resolve_session_config
from host.event_loop import SessionEventLoop
from host.observability import setup_tracing
from session.stream_session import StreamSession

logger = logging.getLogger(__name__)


def configure_logging(log_level: str = "INFO", log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                     log_to_file: bool = False, log_file_path: str = "logs/agent_chat.log",
                     max_lines_per_file: int = 5000, max_log_files: int = 10):
    """
    Configure logging with the specified level, format, and optional rolling file logging.

    Console output goes to stderr so that stdout carries only the conversation JSON.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log message format string
        log_to_file: Whether to enable file logging
        log_file_path: Path to log file (directory will be created if needed)
        max_lines_per_file: Maximum lines per log file before rotation
        max_log_files: Maximum number of log files to keep
    """
    global logger
    try:
        numeric_level = getattr(logging, log_level.upper())
    except AttributeError:
        logger.error(f"Invalid log level: {log_level}. Using INFO instead.")
        logging.basicConfig(level=logging.INFO, format=log_format, force=True)
        return

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        try:
            import os
            from logging.handlers import RotatingFileHandler

            log_dir = os.path.dirname(log_file_path)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            # Size limit approximated from a line budget at ~100 chars per line
            estimated_chars_per_line = 100
            max_bytes = max_lines_per_file * estimated_chars_per_line

            file_handler = RotatingFileHandler(
                filename=log_file_path,
                maxBytes=max_bytes,
                backupCount=max_log_files - 1,  # current file + backups = total
                encoding='utf-8'
            )
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except Exception as file_error:
            logger.warning(f"Failed to setup file logging: {file_error}. Continuing with console logging only.")
            log_to_file = False

    root_logger.setLevel(numeric_level)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: level={log_level.upper()}, file={log_file_path if log_to_file else 'off'}")


def create_cli_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Agent chat stream client - run one turn against an agent server and print the conversation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --message "hello"                                  # One turn against the default local server
  %(prog)s --api-url https://my-deploy --api-key KEY -m hi    # Deployed graph
  %(prog)s --replay captured_stream.jsonl                     # Reconcile a recorded stream offline
        """
    )

    parser.add_argument('--api-url', help=f'Agent server URL (default: settings, then {DEFAULT_API_URL})')
    parser.add_argument('--assistant-id', help=f'Assistant or graph id (default: settings, then {DEFAULT_ASSISTANT_ID})')
    parser.add_argument('--api-key', help='API key sent as X-Api-Key')

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--replay', metavar='FILE', help='Replay a JSONL stream recording instead of contacting the server')
    source.add_argument('--message', '-m', help='User message to send')

    parser.add_argument('--log-level', help='Override the configured log level')
    return parser


async def amain(args: argparse.Namespace) -> int:
    """Asynchronous main entry point. Returns the process exit code."""
    settings = load_settings()

    configure_logging(
        log_level=args.log_level or settings.log_level,
        log_format=settings.log_format,
        log_to_file=settings.log_to_file,
        log_file_path=settings.log_file_path,
        max_lines_per_file=settings.log_max_lines_per_file,
        max_log_files=settings.log_max_files
    )

    if settings.tracing_enabled:
        setup_tracing()

    try:
        config = resolve_session_config(
            settings,
            api_url=args.api_url or settings.api_url or DEFAULT_API_URL,
            assistant_id=args.assistant_id or settings.assistant_id or DEFAULT_ASSISTANT_ID,
            api_key=args.api_key,
        )
    except ValueError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 2

    session = StreamSession.create(config)
    event_loop = SessionEventLoop(session)
    listener = StreamListener(event_loop)
    loop_task = asyncio.create_task(event_loop.run())

    try:
        if args.replay:
            ok = await listener.consume(ReplayEventSource.from_file(args.replay))
        else:
            if not await session.check_connection():
                return 1
            ok = await listener.run_turn(args.message)

        await event_loop.drain()
        print(json.dumps(session.message_dicts(), indent=2, default=str))
        return 0 if ok else 1
    finally:
        event_loop.stop()
        await loop_task
        await session.close()


def main(argv: Optional[List[str]] = None):
    """Synchronous entry point."""
    # Basic logging until we load configuration
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s', stream=sys.stderr)
    args = create_cli_parser().parse_args(argv)
    try:
        exit_code = asyncio.run(amain(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        exit_code = 130
    except Exception as e:
        logger.critical(f"Critical error during session execution: {e}", exc_info=True)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
