#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#
import math
import re

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import StrEnum

# leading numeric prefix, e.g. "45 L/min" -> "45", "1e3x" -> "1e3"
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class Unit(StrEnum):
    """
    Enumeration of measurement units.

    This class defines the units of the channels reported by the irrigation hardware telemetry. Each unit
    is represented as a display string. This enumeration serves to standardize the representation of units
    in the program, ensuring consistency between the normalizer and the presentation helpers.
    """
    AMPERE = "A"
    VOLT = "V"
    CELSIUS = "°C"
    PERCENT = "%"
    KPA = "kPa"
    PH = "pH"
    CONDUCTIVITY = "mS/cm"   # millisiemens per centimeter
    LITERS = "L"
    LITERS_PER_MIN = "L/min"
    RATIO = ""


def parse_float(value) -> float | None:
    """
    Parses a numeric value out of a telemetry field or a configuration string.

    Strings are parsed on their leading numeric portion, so that values carrying a unit suffix
    (e.g. ``"45 L/min"``) still yield a number. Booleans, empty strings, non-numeric text and
    non-finite values (NaN, infinities) are rejected.

    :param value: The raw value - a number, a string or anything else.
    :type value: Any
    :return: The parsed finite number or None when the value cannot be interpreted as one.
    :rtype: float | None
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_PREFIX.match(value)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None


def to_fixed(value: float, decimals: int) -> str:
    """
    Formats a number with a fixed count of decimals, rounding half away from zero on the exact binary value.

    This matches how the telemetry API consumers have always rendered values, e.g. ``7.25 -> "7.3"``
    (Python's own format would yield ``"7.2"``), while ``1.005 -> "1.00"`` as the double is slightly below 1.005.

    :param value: The number to format.
    :type value: float
    :param decimals: Number of digits after the decimal point.
    :type decimals: int
    :return: The formatted number.
    :rtype: str
    """
    quantum = Decimal(1).scaleb(-decimals)
    try:
        rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # magnitude beyond the decimal context precision
        return f"{value:.{decimals}f}"
    if rounded.is_zero():
        rounded = rounded.copy_abs()
    return f"{rounded:f}"
