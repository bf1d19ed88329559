"""cronpush entry point."""

import asyncio
import logging

from cronpush.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper()),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the scheduler and the REST/WebSocket server."""
    from cronpush.app import serve

    logger.info(
        "Starting cronpush on %s:%d (db=%s, tz=%s)",
        settings.host,
        settings.port,
        settings.database_path,
        settings.scheduler_timezone,
    )
    asyncio.run(serve())


if __name__ == "__main__":
    main()
