from irrigo.model.device import DeviceIdentity, NutrientProfile, Tank
from irrigo.nutrients import aggregate, format_mix

ZEROS = {"N": 0.0, "P": 0.0, "K": 0.0, "Ca": 0.0, "Mg": 0.0, "S": 0.0}


def _tank(key, active, volume="1000", **nutrients):
    return Tank(key, key.title(), DeviceIdentity("T", key[-1]), status=active, volume=volume,
                nutrient=NutrientProfile.from_dict(nutrients))


def test_no_tanks_yield_zero_mix():
    assert aggregate([]) == ZEROS


def test_inactive_tanks_are_ignored():
    tanks = [_tank("tank1", False, N="15", P="5"), _tank("tank2", False, N="19")]
    assert aggregate(tanks) == ZEROS


def test_single_active_tank_gives_its_profile():
    tanks = [_tank("tank1", True, N="15", P="5", K="10", Ca="5", Mg="2", S="3"), _tank("tank2", False, N="19", Ca="26")]
    assert aggregate(tanks) == {"N": 15.0, "P": 5.0, "K": 10.0, "Ca": 5.0, "Mg": 2.0, "S": 3.0}


def test_active_tanks_are_averaged():
    tanks = [_tank("tank1", True, N="10", Mg="4"), _tank("tank2", True, N="20")]
    mix = aggregate(tanks)
    assert mix["N"] == 15.0
    assert mix["Mg"] == 2.0
    assert mix["P"] == 0.0


def test_mix_ignores_tank_volume():
    # simple mean per channel; a volume weighted mix would give ~19.9 here
    tanks = [_tank("tank1", True, volume="10", N="10"), _tank("tank2", True, volume="1000", N="20")]
    assert aggregate(tanks)["N"] == 15.0


def test_unparsable_values_count_as_zero():
    tanks = [_tank("tank1", True, N="10"), _tank("tank2", True, N="abc")]
    assert aggregate(tanks)["N"] == 5.0


def test_aggregate_is_idempotent():
    tanks = [_tank("tank1", True, N="15", P="5"), _tank("tank2", True, N="19", Ca="26")]
    first = aggregate(tanks)
    assert aggregate(tanks) == first
    assert tanks[0].nutrient.N == "15"


def test_custom_activity_predicate():
    tanks = [_tank("tank1", False, N="10"), _tank("tank2", False, N="30")]
    assert aggregate(tanks, lambda t: t.key == "tank2")["N"] == 30.0


def test_format_mix_uses_one_decimal():
    assert format_mix({"N": 17.0, "P": 2.5, "K": 5.0, "Ca": 15.5, "Mg": 1.0, "S": 1.5}) == \
        {"N": "17.0", "P": "2.5", "K": "5.0", "Ca": "15.5", "Mg": "1.0", "S": "1.5"}
    assert format_mix({}) == {n: "0.0" for n in ZEROS}
