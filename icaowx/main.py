"""Command line entry point."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn

from icaowx.config import AppConfig, LoggingConfig
from icaowx.ingest import build_ingestors
from icaowx.scheduler import build_scheduler
from icaowx.storage import StorageError, open_storage

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s:%(name)s:%(message)s'


def setup_logging(config: LoggingConfig) -> None:
    """Log to stderr, and to a file if one is configured."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))
    logging.basicConfig(level=config.level, format=LOG_FORMAT, handlers=handlers, force=True)


async def run_updater(config: AppConfig, once: bool = False) -> int:
    """
    Run feed ingestion until interrupted, or every feed once.

    Returns:
        Process exit code
    """
    try:
        storage = await open_storage(config.storage)
    except StorageError as e:
        logger.error(f"Cannot open storage: {e}")
        return 1

    try:
        ingestors = build_ingestors(config, storage)
        if not ingestors:
            logger.warning("No feeds enabled")
            return 0

        if config.storage.backend == "memory":
            logger.warning("Memory storage is private to this process; the API will not see these updates")

        if once:
            results = await asyncio.gather(*(ingestor.run() for ingestor, _ in ingestors))
            return 0 if all(r.ok for r in results) else 1

        scheduler = build_scheduler(ingestors)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.stop)
            except NotImplementedError:
                # Windows: KeyboardInterrupt ends the process instead.
                pass
        scheduler.start()
        await scheduler.wait()
        logger.info("Updater stopped")
        return 0
    finally:
        await storage.close()


def run_server(config: AppConfig) -> None:
    """Run the API with uvicorn until interrupted."""
    from icaowx.web_app import create_app

    app = create_app(config)
    logger.info(f"Starting server on {config.server.host}:{config.server.port}")
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
        log_config=None,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="icaowx", description="METAR/TAF feed ingestion and JSON API")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json (default ~/.icaowx/config.json)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--no-updater", action="store_true", help="Do not run feed ingestion in the server process")

    update = sub.add_parser("update", help="Run feed ingestion")
    update.add_argument("--once", action="store_true", help="Run every enabled feed once and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = AppConfig.load(args.config)
    except (OSError, ValueError) as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging)

    if args.command == "serve":
        if args.no_updater:
            config.server.run_updater = False
        run_server(config)
        return 0

    return asyncio.run(run_updater(config, once=args.once))


if __name__ == "__main__":
    sys.exit(main())
