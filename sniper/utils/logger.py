import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)


def _is_alert(record: dict) -> bool:
    return record["message"].startswith("[ALERT]")


def setup_logger(log_dir: str | Path = "logs", *, level: str = "INFO", json_logs: bool = False) -> None:
    """Route sniper logs to the console, a daily DEBUG file and an alerts-only file.

    The alerts file keeps every dispatched alert line for a month, independent
    of how noisy the main log is.
    """
    log_dir = Path(log_dir)
    logger.remove()

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=level.upper())
    else:
        logger.add(sys.stdout, format=CONSOLE_FORMAT, level=level.upper(), colorize=True)

    logger.add(
        log_dir / "sniper_{time:YYYY-MM-DD}.log",
        rotation="50 MB",
        retention="7 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
        enqueue=True,
    )
    logger.add(
        log_dir / "alerts_{time:YYYY-MM}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {message}",
        level="INFO",
        filter=_is_alert,
        retention="90 days",
        enqueue=True,
    )
