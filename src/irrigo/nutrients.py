#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

from typing import Callable, Iterable

from .model.device import NUTRIENTS, Tank
from .model.units import parse_float, to_fixed


def _is_active(tank: Tank) -> bool:
    return tank.active


def aggregate(tanks: Iterable[Tank], is_active: Callable[[Tank], bool] | None = None) -> dict[str, float]:
    """
    Computes the nutrient mix delivered by the active tanks.

    Each nutrient channel is averaged independently over the active tanks, as a simple arithmetic mean - tank
    volumes are not taken into account. A channel value that does not parse as a number counts as 0. With no
    active tank the mix is all zeros.

    :param tanks: The tanks to consider.
    :type tanks: Iterable[Tank]
    :param is_active: Optional predicate selecting the tanks taking part in the mix; defaults to the tank active flag.
    :type is_active: Callable[[Tank], bool] | None
    :return: Mix percentages keyed by nutrient symbol (N, P, K, Ca, Mg, S).
    :rtype: dict[str, float]
    """
    predicate = is_active or _is_active
    active = [t for t in tanks if predicate(t)]
    totals = {n: 0.0 for n in NUTRIENTS}
    if not active:
        return totals
    for tank in active:
        profile = tank.nutrient.as_dict()
        for n in NUTRIENTS:
            totals[n] += parse_float(profile.get(n)) or 0.0
    return {n: totals[n] / len(active) for n in NUTRIENTS}


def format_mix(mix: dict[str, float]) -> dict[str, str]:
    """Renders a nutrient mix with one decimal per channel."""
    return {n: to_fixed(mix.get(n, 0.0), 1) for n in NUTRIENTS}
