#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import logging
import os

from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from .config import CONFIG, Settings, LOG_DIR

LOG_FILE = "irrigo-%TIME%.log"

def init_logging(level: int = logging.INFO, log_dir: str = LOG_DIR) -> None:
    """
    Initialize application-wide logging.

    - Logs to console and to a rotating file under log_dir.
    - File name carries the current year and month, in the configured local timezone.
    - Safe to call multiple times; subsequent calls are ignored.
    """
    if logging.getLogger().handlers:
        return  # Already initialized

    os.makedirs(log_dir, exist_ok=True)
    now = datetime.now(CONFIG[Settings.LOCAL_TIMEZONE])
    logfile = os.path.join(log_dir, LOG_FILE.replace("%TIME%", now.strftime("%Y-%m")))

    fmt = "%(asctime)s %(levelname)s [%(threadName)s] [%(name)s] %(message)s"
    datefmt = "%b-%d %H:%M:%S"
    msfmt = "%s.%03d"

    handlers = [
        logging.StreamHandler(),
        TimedRotatingFileHandler(logfile, when='D', interval=30, backupCount=12, encoding='utf-8'),  # Keep 12 months
    ]
    root = logging.getLogger()
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt=fmt))
        handler.formatter.default_time_format = datefmt
        handler.formatter.default_msec_format = msfmt
        root.addHandler(handler)
    # urllib3 logs every connection attempt at debug level
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
