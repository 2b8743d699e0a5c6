"""Decoders for the property values a low-voltage smart meter reports.

Each class decodes the hexadecimal EDT text of one ECHONET Lite property.
``DATA_LENGTH`` is the number of hex characters that property occupies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import ClassVar

__all__ = [
    "power_unit_multiplier",
    "Coefficient",
    "TotalPower",
    "PowerUnit",
    "TotalPowerHistories",
    "CollectionDay",
    "InstantaneousPower",
    "InstantaneousAmperage",
    "CurrentTotalPower",
]

_HEX_PREFIX = re.compile(r"\s*([+-]?)(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]*)")

_POWER_UNITS = {
    "00": 1.0,
    "01": 0.1,
    "02": 0.01,
    "03": 0.001,
    "04": 0.0001,
    "0A": 10.0,
    "0B": 100.0,
    "0C": 1000.0,
    "0D": 10000.0,
}

_HISTORY_SLOTS = 48
_HISTORY_WIDTH = 8


def _hex(text: str) -> int:
    """Read a leading hexadecimal number, yielding 0 when there is none."""
    match = _HEX_PREFIX.match(text)
    if match is None or not match.group(2):
        return 0
    value = int(match.group(2), 16)
    return -value if match.group(1) == "-" else value


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def power_unit_multiplier(code: str) -> float:
    """Return the kWh multiplier for a unit code, or 0.0 for an unknown code."""
    return _POWER_UNITS.get(code, 0.0)


@dataclass(frozen=True)
class Coefficient:
    """Coefficient applied to cumulative energy readings (EPC 0xD3)."""

    DATA_LENGTH: ClassVar[int] = 8
    coefficient: int = 0

    @classmethod
    def parse(cls, data: str) -> Coefficient:
        return cls(_hex(data))


@dataclass(frozen=True)
class TotalPower:
    """Cumulative energy reading before unit conversion (EPC 0xE0)."""

    DATA_LENGTH: ClassVar[int] = 8
    total_power: int = 0

    @classmethod
    def parse(cls, data: str) -> TotalPower:
        return cls(_hex(data))


@dataclass(frozen=True)
class PowerUnit:
    """Multiplier converting cumulative readings to kWh (EPC 0xE1)."""

    DATA_LENGTH: ClassVar[int] = 2
    unit: float = 0.0

    @classmethod
    def parse(cls, data: str) -> PowerUnit:
        return cls(power_unit_multiplier(data[:2]))


@dataclass(frozen=True)
class TotalPowerHistories:
    """Half-hourly cumulative readings for one day (EPC 0xE2)."""

    DATA_LENGTH: ClassVar[int] = 388
    day: int = 0
    powers: tuple[int, ...] = field(default=(0,) * _HISTORY_SLOTS)

    @classmethod
    def parse(cls, data: str) -> TotalPowerHistories:
        day = _hex(data[:4])
        readings = data[4 : 4 + _HISTORY_SLOTS * _HISTORY_WIDTH]
        powers = tuple(
            _hex(readings[start : start + _HISTORY_WIDTH])
            for start in range(0, _HISTORY_SLOTS * _HISTORY_WIDTH, _HISTORY_WIDTH)
        )
        return cls(day, powers)


@dataclass(frozen=True)
class CollectionDay:
    """How many days back the history readings are collected (EPC 0xE5)."""

    DATA_LENGTH: ClassVar[int] = 2
    day: int = 0

    @classmethod
    def parse(cls, data: str) -> CollectionDay:
        return cls(_hex(data) & 0xFF)


@dataclass(frozen=True)
class InstantaneousPower:
    """Instantaneous power in watts, signed (EPC 0xE7)."""

    DATA_LENGTH: ClassVar[int] = 8
    power: int = 0

    @classmethod
    def parse(cls, data: str) -> InstantaneousPower:
        return cls(_to_int32(_hex(data)))


@dataclass(frozen=True)
class InstantaneousAmperage:
    """Instantaneous current of the R and T phases in 0.1 A (EPC 0xE8)."""

    DATA_LENGTH: ClassVar[int] = 8
    amperage_r: int = 0
    amperage_t: int = 0

    @classmethod
    def parse(cls, data: str) -> InstantaneousAmperage:
        return cls(_hex(data[0:4]), _hex(data[4:8]))

    def amperage(self) -> int:
        """Total current of both phases in 0.1 A."""
        return self.amperage_r + self.amperage_t


@dataclass(frozen=True)
class CurrentTotalPower:
    """Latest half-hourly cumulative reading with its timestamp (EPC 0xEA)."""

    DATA_LENGTH: ClassVar[int] = 22
    total_power: int = 0
    year: int = 0
    month: int = 0
    day: int = 0
    hour: int = 0
    minute: int = 0
    second: int = 0

    @classmethod
    def parse(cls, data: str) -> CurrentTotalPower:
        date = data[:14]
        return cls(
            total_power=_hex(data[14:22]),
            year=_hex(date[0:4]),
            month=_hex(date[4:6]),
            day=_hex(date[6:8]),
            hour=_hex(date[8:10]),
            minute=_hex(date[10:12]),
            second=_hex(date[12:14]),
        )