import asyncio
import logging
import signal

from depextract.core.cache import cache_service
from depextract.core.config import settings
from depextract.core.init_db import init_db
from depextract.core.metrics import start_metrics_server
from depextract.core.worker import worker_manager
from depextract.db.mongodb import close_mongo_connection, connect_to_mongo

logger = logging.getLogger(__name__)


async def serve() -> None:
    await connect_to_mongo()
    await init_db()
    start_metrics_server(settings.METRICS_PORT)
    await worker_manager.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(f"{settings.PROJECT_NAME} running")
    try:
        await stop.wait()
    finally:
        await worker_manager.stop()
        await cache_service.close()
        await close_mongo_connection()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(serve())


if __name__ == "__main__":
    main()
