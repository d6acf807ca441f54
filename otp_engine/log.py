import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from otp_engine.config import settings

_handler: Optional[logging.Handler] = None


def setup_logging(level: Optional[str] = None, json_format: Optional[bool] = None):
    """
    Attach a stdout handler to the root logger; JSON lines when json_format is set.

    Calling it again replaces the handler installed by the previous call.
    """
    global _handler
    level = level or settings.LOG_LEVEL
    json_format = settings.LOG_JSON if json_format is None else json_format

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"}
        )
    else:
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    if _handler is not None:
        root_logger.removeHandler(_handler)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
    _handler = handler

    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    return handler
