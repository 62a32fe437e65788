#!/usr/bin/env python3
"""Face Touch Monitor - Main Entry Point.

Loads configuration, sets up logging and serves the control API with
uvicorn. The session itself (camera, model, training, inference) is
driven through the API; see facetouch/api/routes/session.py.

Usage:
    python -m facetouch.main [--config CONFIG] [--debug] [--mock]
    python -m facetouch.main --host 0.0.0.0 --port 8000
"""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import uvicorn

from facetouch.api.server import create_app
from facetouch.config import Config, load_config

logger = logging.getLogger(__name__)


def setup_logging(config: Config, debug: bool = False) -> None:
    """Configure logging based on config settings.

    Args:
        config: Configuration object
        debug: Enable debug mode
    """
    # Determine log level
    level = logging.DEBUG if debug else getattr(
        logging, config.logging.level.upper(), logging.INFO
    )

    # Create formatter
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (if configured)
    if config.logging.file:
        log_file = str(config.resolve_path(config.logging.file))
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_size_mb * 1024 * 1024,
            backupCount=config.logging.backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce verbosity of some noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.info(f"Logging configured (level: {logging.getLevelName(level)})")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Face Touch Monitor - webcam alerts when you touch your face"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration file (default: config.local.yaml or config.yaml)",
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--mock", "-m",
        action="store_true",
        help="Use simulated webcam, model and sound",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: from config)",
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        if args.config:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        config = Config()

    if args.mock:
        config.mock_mode = True

    setup_logging(config, args.debug)

    host = args.host or config.web.host
    port = args.port or config.web.port

    logger.info("=" * 50)
    logger.info("Face Touch Monitor Starting")
    logger.info("Not a health product - proof of concept only")
    logger.info("=" * 50)
    logger.info(f"Mock mode: {config.mock_mode}")
    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level="debug" if args.debug else "info",
    )


if __name__ == "__main__":
    main()
