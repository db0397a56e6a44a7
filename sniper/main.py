"""Entry point for the Base token sniper."""

import asyncio
import signal

from loguru import logger

from config.settings import settings
from sniper.parsers.worker import run_sniper
from sniper.utils.logger import setup_logger


async def main() -> None:
    setup_logger(settings.log_dir, level=settings.log_level, json_logs=settings.json_logs)
    logger.info("Starting base sniper...")

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    sniper_task = asyncio.create_task(run_sniper())
    shutdown_task = asyncio.create_task(shutdown_event.wait())

    done, pending = await asyncio.wait(
        [sniper_task, shutdown_task],
        return_when=asyncio.FIRST_COMPLETED,
    )

    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # surfaces fatal startup errors (e.g. unreachable RPC)
    if sniper_task in done and sniper_task.exception() is not None:
        logger.opt(exception=sniper_task.exception()).critical("Sniper crashed")
        raise SystemExit(1)
    logger.info("Shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
