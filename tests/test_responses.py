import pytest

from broutemeter.responses import (
    CollectionDay,
    Coefficient,
    CurrentTotalPower,
    InstantaneousAmperage,
    InstantaneousPower,
    PowerUnit,
    TotalPower,
    TotalPowerHistories,
    power_unit_multiplier,
)


@pytest.mark.parametrize(
    "code, expected",
    [
        ("00", 1.0),
        ("01", 0.1),
        ("02", 0.01),
        ("03", 0.001),
        ("04", 0.0001),
        ("0A", 10.0),
        ("0B", 100.0),
        ("0C", 1000.0),
        ("0D", 10000.0),
    ],
)
def test_power_unit_multiplier_table(code, expected):
    assert power_unit_multiplier(code) == pytest.approx(expected)


@pytest.mark.parametrize("code", ["05", "0E", "FF", "", "zz"])
def test_power_unit_multiplier_unknown(code):
    assert power_unit_multiplier(code) == 0.0


def test_power_unit_parse_uses_first_two_characters():
    assert PowerUnit.parse("01FF").unit == pytest.approx(0.1)
    assert PowerUnit.parse("0A").unit == pytest.approx(10.0)


def test_power_unit_parse_matches_multiplier():
    for code in ("00", "02", "0C", "99"):
        assert PowerUnit.parse(code).unit == power_unit_multiplier(code)


@pytest.mark.parametrize("value", [0, 1, 10, 0x1234, 0x00ABCDEF, 99999999])
def test_coefficient_round_trip(value):
    text = format(value, "0{}X".format(Coefficient.DATA_LENGTH))
    assert Coefficient.parse(text).coefficient == value


def test_coefficient_without_hex_digits_is_zero():
    assert Coefficient.parse("zz").coefficient == 0


@pytest.mark.parametrize("value", [0, 7, 0x0001E240, 99999999])
def test_total_power_round_trip(value):
    text = format(value, "0{}X".format(TotalPower.DATA_LENGTH))
    assert TotalPower.parse(text).total_power == value


def test_total_power_accepts_lowercase_hex():
    assert TotalPower.parse("0000abcd").total_power == TotalPower.parse("0000ABCD").total_power


def _history_text(day, powers):
    return format(day, "04X") + "".join(format(p, "08X") for p in powers)


def test_total_power_histories_round_trip():
    powers = [index * 1000 + 3 for index in range(48)]
    text = _history_text(2, powers)
    assert len(text) == TotalPowerHistories.DATA_LENGTH
    parsed = TotalPowerHistories.parse(text)
    assert parsed.day == 2
    assert parsed.powers == tuple(powers)


def test_total_power_histories_always_has_48_slots():
    parsed = TotalPowerHistories.parse(format(5, "04X") + format(42, "08X"))
    assert parsed.day == 5
    assert len(parsed.powers) == 48
    assert parsed.powers[0] == 42
    assert set(parsed.powers[1:]) == {0}


def test_total_power_histories_ignores_trailing_data():
    powers = list(range(48))
    text = _history_text(1, powers) + "FFFFFFFF"
    assert TotalPowerHistories.parse(text).powers == tuple(powers)


@pytest.mark.parametrize("day", [0, 1, 45, 99])
def test_collection_day_round_trip(day):
    assert CollectionDay.parse(format(day, "02X")).day == day


@pytest.mark.parametrize("watts", [0, 1, 560, 0x7FFFFFFF])
def test_instantaneous_power_positive_round_trip(watts):
    assert InstantaneousPower.parse(format(watts, "08X")).power == watts


def test_instantaneous_power_is_signed():
    assert InstantaneousPower.parse("FFFFFFFF").power == -1
    assert InstantaneousPower.parse("80000000").power == -2147483648


@pytest.mark.parametrize("r, t", [(0, 0), (12, 34), (0x0100, 0x0001), (0xFFFF, 0)])
def test_instantaneous_amperage_round_trip(r, t):
    parsed = InstantaneousAmperage.parse(format(r, "04X") + format(t, "04X"))
    assert parsed.amperage_r == r
    assert parsed.amperage_t == t
    assert parsed.amperage() == r + t


def test_current_total_power_round_trip():
    text = (
        format(2024, "04X")
        + format(3, "02X")
        + format(15, "02X")
        + format(13, "02X")
        + format(30, "02X")
        + format(0, "02X")
        + format(123456, "08X")
    )
    assert len(text) == CurrentTotalPower.DATA_LENGTH
    parsed = CurrentTotalPower.parse(text)
    assert parsed.total_power == 123456
    assert (parsed.year, parsed.month, parsed.day) == (2024, 3, 15)
    assert (parsed.hour, parsed.minute, parsed.second) == (13, 30, 0)


def test_parsed_values_compare_equal():
    assert Coefficient.parse("0000000A") == Coefficient.parse("0000000a")
    assert InstantaneousAmperage.parse("00010002") == InstantaneousAmperage(1, 2)