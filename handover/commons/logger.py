import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def setup_logging(
    root: str,
    level: str = "INFO",
    filename: str = "handover.log",
    retention: str = "14 days",
    console: bool = True,
):
    """Log diario en root/YYYY/MM/DD/<filename>; la consola va a stderr para no mezclarse con la salida JSON."""
    logdir = Path(root) / datetime.now().strftime("%Y/%m/%d")
    logdir.mkdir(parents=True, exist_ok=True)
    logger.remove()
    logger.add(
        str(logdir / filename),
        rotation="00:00",
        retention=retention,
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,  # sin volcar variables locales con datos de pacientes
    )
    if console:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    return logger
