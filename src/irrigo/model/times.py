#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#
from datetime import datetime

import pytz
import logging
from ..config import DEFAULT_TIMEZONE, CONFIG, Settings

def valid_timezone(tz: str) -> pytz.BaseTzInfo:
    """Resolves a timezone name, falling back to the default timezone for unknown names."""
    try:
        return pytz.timezone(tz or "UTC")
    except pytz.UnknownTimeZoneError:
        logging.getLogger(__name__).warning(f"Invalid timezone '{tz}' for pytz/TZDB version {pytz.VERSION}. "
                                            f"Using default timezone {DEFAULT_TIMEZONE} instead.")
        return DEFAULT_TIMEZONE


def now_local() -> datetime:
    """Current time in the configured local timezone; readings are stamped with it."""
    return datetime.now(CONFIG[Settings.LOCAL_TIMEZONE])
