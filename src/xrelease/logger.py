import logging
import os
import sys
from typing import Optional, Union


def is_rich_enabled() -> bool:
    """Check if rich log output is requested via environment."""
    return os.environ.get("XRELEASE_RICH_UI", "false").lower() in ("true", "1", "yes")


def get_rich_handler() -> logging.Handler:
    from rich.logging import RichHandler

    return RichHandler(
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )


def setup_logging(
    level: Union[int, str] = logging.INFO, stream=sys.stdout, fmt: Optional[str] = None
):
    """
    Sets up the root logger with a stream handler and basic formatting.
    Uses a Rich handler when XRELEASE_RICH_UI is set, otherwise standard logging.
    Does nothing if handlers are already configured.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    if not root_logger.hasHandlers():
        if is_rich_enabled():
            handler = get_rich_handler()
        else:
            if fmt is None:
                if level == logging.DEBUG:
                    fmt = "%(asctime)s | %(levelname)-5s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
                else:
                    fmt = "%(asctime)s | %(levelname)-5s | %(message)s"

            handler = logging.StreamHandler(stream)
            handler.setFormatter(logging.Formatter(fmt))

        root_logger.setLevel(level)
        root_logger.addHandler(handler)

    # Optionally allow log level override via env var
    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        root_logger.setLevel(env_level.upper())

    # botocore is chatty at INFO
    for logger_name in ("botocore", "boto3", "urllib3"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
