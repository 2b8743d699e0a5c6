"""Driver for a Wi-SUN B-route module talking to a low-voltage smart meter.

The module is driven over a serial line with SK commands in ASCII mode.
Property requests travel as ECHONET Lite frames inside ``SKSENDTO``, and
the meter's answers come back as ``ERXUDP`` events.
"""

from __future__ import annotations

import logging
import string
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Iterable, Protocol

from .responses import (
    Coefficient,
    CollectionDay,
    CurrentTotalPower,
    InstantaneousAmperage,
    InstantaneousPower,
    PowerUnit,
    TotalPower,
    TotalPowerHistories,
)

__all__ = [
    "ResponseType",
    "CmdType",
    "ScanResult",
    "BP35A1Error",
    "build_get_frame",
    "build_set_frame",
    "validate_ipv6_format",
    "remove_prefix",
    "BP35A1",
    "SMART_METER_ID",
]

log = logging.getLogger(__name__)

SMART_METER_ID = "028801"
"""Class group, class and instance code of a low-voltage smart meter."""

READ_TIMEOUT = 5.0
READ_INTERVAL = 0.1
CONNECTION_TIMEOUT = 30.0
_CLEAR_DELAY = 0.5
_RESCAN_DELAY = 1.0
_MAX_TOTAL_POWER = 99999999

_FRAME_HEADER = bytes(
    [
        0x10, 0x81,        # EHD: ECHONET Lite header
        0x00, 0x01,        # TID: transaction id
        0x05, 0xFF, 0x01,  # SEOJ: controller
        0x02, 0x88, 0x01,  # DEOJ: low-voltage smart meter
    ]
)
_ESV_GET = 0x62
_ESV_SET = 0x61

_HEX_CHARS = frozenset(string.hexdigits)


class ResponseType(IntEnum):
    """ECHONET Lite service codes of the meter's replies."""

    SET = 0x71
    GET = 0x72


class CmdType(IntEnum):
    """Property codes (EPC) of the smart meter."""

    COEFFICIENT = 0xD3
    TOTAL_POWER = 0xE0
    POWER_UNIT = 0xE1
    TOTAL_POWER_HISTORIES = 0xE2
    TOTAL_HISTORY_COLLECTION_DATE = 0xE5
    INSTANTANEOUS_POWER = 0xE7
    INSTANTANEOUS_AMPERAGE = 0xE8
    CURRENT_TOTAL_POWER = 0xEA


_DECODERS = {
    CmdType.COEFFICIENT: Coefficient,
    CmdType.TOTAL_POWER: TotalPower,
    CmdType.POWER_UNIT: PowerUnit,
    CmdType.TOTAL_POWER_HISTORIES: TotalPowerHistories,
    CmdType.TOTAL_HISTORY_COLLECTION_DATE: CollectionDay,
    CmdType.INSTANTANEOUS_POWER: InstantaneousPower,
    CmdType.INSTANTANEOUS_AMPERAGE: InstantaneousAmperage,
    CmdType.CURRENT_TOTAL_POWER: CurrentTotalPower,
}


@dataclass
class ScanResult:
    """The PAN found by an active scan."""

    channel: str = ""
    pan_id: str = ""
    addr: str = ""


class BP35A1Error(Exception):
    """The module reported a failure or did not answer in time."""


class SerialPort(Protocol):
    """The part of a serial port the driver uses."""

    @property
    def in_waiting(self) -> int: ...

    def read(self, size: int = 1) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def flush(self) -> None: ...


def build_get_frame(commands: Iterable[CmdType]) -> bytes:
    """Build a property read request (Get) for the given properties."""
    commands = list(commands)
    frame = bytearray(_FRAME_HEADER)
    frame.append(_ESV_GET)
    frame.append(len(commands))
    for command in commands:
        frame += bytes([int(command), 0x00])
    return bytes(frame)


def build_set_frame(command: CmdType, values: Iterable[int]) -> bytes:
    """Build a property write request (SetC) for one property."""
    frame = bytearray(_FRAME_HEADER)
    frame.append(_ESV_SET)
    frame += bytes([0x01, int(command), 0x01])
    frame += bytes(values)
    return bytes(frame)


def validate_ipv6_format(text: str) -> bool:
    """Tell whether text is a fully written-out IPv6 address."""
    return len(text) == 39 and all(c == ":" or c in _HEX_CHARS for c in text)


def remove_prefix(text: str, prefix: str) -> str:
    """Return what follows the first occurrence of prefix in text."""
    return text.partition(prefix)[2]


def _hex_field(text: str) -> int:
    try:
        return int(text, 16)
    except ValueError:
        return 0


def _split_columns(response: str) -> list[str]:
    columns = response.split(" ")
    if columns and columns[-1] == "":
        columns.pop()
    return columns


class BP35A1:
    """A B-route module attached to a serial port."""

    def __init__(
        self,
        serial: SerialPort,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._serial = serial
        self._sleep = sleep
        self._clock = clock
        self.scan_result = ScanResult()
        self.ipv6 = ""
        self._readings = {command: decoder() for command, decoder in _DECODERS.items()}

    # -- readings -------------------------------------------------------

    @property
    def coefficient(self) -> int:
        return self._readings[CmdType.COEFFICIENT].coefficient

    @property
    def total_power(self) -> float:
        """Cumulative energy in kWh."""
        return self.convert_total_power(self._readings[CmdType.TOTAL_POWER].total_power)

    @property
    def power_unit(self) -> float:
        return self._readings[CmdType.POWER_UNIT].unit

    @property
    def total_power_histories(self) -> TotalPowerHistories:
        return self._readings[CmdType.TOTAL_POWER_HISTORIES]

    @property
    def collection_day(self) -> int:
        return self._readings[CmdType.TOTAL_HISTORY_COLLECTION_DATE].day

    @property
    def instantaneous_power(self) -> int:
        """Instantaneous power in watts."""
        return self._readings[CmdType.INSTANTANEOUS_POWER].power

    @property
    def instantaneous_amperage(self) -> InstantaneousAmperage:
        return self._readings[CmdType.INSTANTANEOUS_AMPERAGE]

    @property
    def current_total_power(self) -> float:
        """Latest half-hourly cumulative energy in kWh."""
        return self.convert_total_power(
            self._readings[CmdType.CURRENT_TOTAL_POWER].total_power
        )

    def convert_total_power(self, power: int) -> float:
        """Convert a raw cumulative reading to kWh; out-of-range readings give 0."""
        if power > _MAX_TOTAL_POWER or power < 0:
            return 0.0
        return power * self.coefficient * self.power_unit

    # -- module setup ---------------------------------------------------

    def set_echo_callback(self, enabled: bool) -> None:
        """Switch the command echo on or off."""
        self._send(f"SKSREG SFE {int(bool(enabled))}\r\n")
        self.clear_buffer()

    def delete_session(self) -> None:
        """Terminate any previous PANA session."""
        self._send("SKTERM\r\n")
        self.clear_buffer()

    def get_version(self) -> None:
        """Ask the module for its version; raises if it reports a failure."""
        self._send("SKVER\r\n")
        try:
            self._wait_success()
        finally:
            self.clear_buffer()

    def get_ascii_mode(self) -> bool:
        """Tell whether the module reports ERXUDP data in ASCII."""
        self._send("ROPT\r\n")
        self._serial.flush()
        while True:
            if self._serial.in_waiting:
                return "OK 01" in self._read_line()
            self._sleep(READ_INTERVAL)

    def assure_ascii_mode(self) -> None:
        """Switch to ASCII mode unless it is already on."""
        if not self.get_ascii_mode():
            self.set_ascii_mode(True)

    def set_ascii_mode(self, use_ascii_mode: bool) -> None:
        """Write the output mode to the module's flash memory."""
        self._send("WOPT 01\n\n" if use_ascii_mode else "WOPT 00\n\n")
        try:
            self._wait_success()
        finally:
            self.clear_buffer()

    def set_password(self, password: str) -> None:
        """Set the B-route password."""
        log.debug("send [SKSETPWD C <password>]")
        self._serial.write(f"SKSETPWD C {password}\r\n".encode("ascii"))
        self._wait_success()

    def set_id(self, rbid: str) -> None:
        """Set the B-route id."""
        log.debug("send [SKSETRBID <id>]")
        self._serial.write(f"SKSETRBID {rbid}\r\n".encode("ascii"))
        self._wait_success()

    # -- joining the PAN --------------------------------------------------

    def scan_channel(self) -> ScanResult:
        """Scan for the meter's PAN with growing durations and return it."""
        for duration in range(6, 10):
            self._send(f"SKSCAN 2 FFFFFFFF {duration}\r\n")
            self._wait_success()
            result = self._wait_scan_response(duration)
            if result is not None:
                self.scan_result = result
                return result
            log.warning("scan result not received")
            self._sleep(_RESCAN_DELAY)
        raise BP35A1Error("no PAN found by the channel scan")

    def get_ipv6_address(self) -> str:
        """Convert the scanned MAC address to a link-local IPv6 address."""
        if not self.scan_result.addr:
            raise BP35A1Error("no scanned address")
        self._send(f"SKLL64 {self.scan_result.addr}\r\n")
        while True:
            if self._serial.in_waiting:
                line = self._read_line().strip()
                if validate_ipv6_format(line):
                    self.ipv6 = line
                    return line
            self._sleep(READ_INTERVAL)

    def set_channel(self) -> None:
        """Set the scanned channel on the module."""
        if not self.scan_result.channel:
            raise BP35A1Error("no scanned channel")
        self._send(f"SKSREG S2 {self.scan_result.channel}\r\n")
        self._wait_success()

    def set_pan_id(self) -> None:
        """Set the scanned PAN id on the module."""
        if not self.scan_result.pan_id:
            raise BP35A1Error("no scanned PAN id")
        self._send(f"SKSREG S3 {self.scan_result.pan_id}\r\n")
        self._wait_success()

    def request_and_wait_connection(self) -> None:
        """Start PANA authentication and wait until it completes."""
        self._send(f"SKJOIN {self.ipv6}\r\n")
        self._wait_success()
        self._wait_connection()

    # -- properties -------------------------------------------------------

    def get_properties(self, commands: Iterable[CmdType]) -> bool:
        """Read properties; true when a valid meter reply was processed."""
        self._send_udp(build_get_frame(commands))
        return self._wait_udp_response()

    def set_properties(self, command: CmdType, values: Iterable[int]) -> bool:
        """Write a property; true when a valid meter reply was processed."""
        self._send_udp(build_set_frame(command, values))
        return self._wait_udp_response()

    def request_coefficient(self) -> bool:
        return self.get_properties([CmdType.COEFFICIENT])

    def request_total_power(self) -> bool:
        return self.get_properties([CmdType.TOTAL_POWER])

    def request_power_unit(self) -> bool:
        return self.get_properties([CmdType.POWER_UNIT])

    def request_current_total_power_histories(self) -> bool:
        return self.get_properties([CmdType.TOTAL_POWER_HISTORIES])

    def request_total_history_collection_date(self) -> bool:
        return self.get_properties([CmdType.TOTAL_HISTORY_COLLECTION_DATE])

    def set_total_history_collection_date(self, day: int) -> bool:
        return self.set_properties(CmdType.TOTAL_HISTORY_COLLECTION_DATE, [day])

    def request_instantaneous_power(self) -> bool:
        return self.get_properties([CmdType.INSTANTANEOUS_POWER])

    def request_instantaneous_amperage(self) -> bool:
        return self.get_properties([CmdType.INSTANTANEOUS_AMPERAGE])

    def request_current_total_power(self) -> bool:
        return self.get_properties([CmdType.CURRENT_TOTAL_POWER])

    def handle_udp_response(self, response: str) -> bool:
        """Decode an ERXUDP line and store the readings it carries."""
        columns = _split_columns(response)
        if len(columns) != 9:
            return False
        data = columns[8]
        if len(data) < 24 or data[8:14] != SMART_METER_ID:
            return False

        esv = _hex_field(data[20:22])
        count = _hex_field(data[22:24])
        rest = data[24:]
        try:
            kind = ResponseType(esv)
        except ValueError:
            log.debug("not supported ESV: %d", esv)
            return count == 0 and rest == ""

        handler = self._handle_get if kind is ResponseType.GET else self._handle_set
        for _ in range(count):
            consumed = handler(rest)
            if consumed is None:
                return False
            rest = consumed
        return rest == ""

    def clear_buffer(self) -> str:
        """Wait briefly, then discard and return whatever the module sent."""
        self._sleep(_CLEAR_DELAY)
        pending = bytearray()
        while self._serial.in_waiting:
            pending += self._serial.read(1)
        text = pending.decode("latin-1")
        if text:
            log.debug("cleared: %s", text)
        return text

    # -- internals --------------------------------------------------------

    def _send(self, command: str) -> None:
        log.debug("send [%s]", command.strip())
        self._serial.write(command.encode("ascii"))

    def _read_line(self) -> str:
        line = bytearray()
        while True:
            if self._serial.in_waiting:
                line += self._serial.read(1)
                if line.endswith(b"\r\n"):
                    return line[:-2].decode("latin-1")
            else:
                self._sleep(READ_INTERVAL)

    def _wait_success(self) -> None:
        self._serial.flush()
        while True:
            if self._serial.in_waiting:
                line = self._read_line()
                if "FAIL ER" in line:
                    raise BP35A1Error(f"error response received: {line}")
                if "OK" in line:
                    return
            self._sleep(READ_INTERVAL)

    def _wait_scan_response(self, duration: int) -> ScanResult | None:
        deadline = self._clock() + duration * READ_TIMEOUT
        received = False
        result = ScanResult()
        while deadline > self._clock():
            if self._serial.in_waiting:
                line = self._read_line()
                if "EVENT 20" in line:
                    received = True
                    continue
                if "EVENT 22" in line:
                    self.clear_buffer()
                    return result if received else None
                if "Channel:" in line:
                    result.channel = remove_prefix(line, "Channel:")
                elif "Pan ID:" in line:
                    result.pan_id = remove_prefix(line, "Pan ID:")
                elif "Addr:" in line:
                    result.addr = remove_prefix(line, "Addr:")
            self._sleep(READ_INTERVAL)
        log.warning("scan response timed out")
        return None

    def _wait_connection(self) -> None:
        deadline = self._clock() + CONNECTION_TIMEOUT
        while deadline > self._clock():
            if self._serial.in_waiting:
                line = self._read_line()
                if "EVENT 25" in line:
                    return
                if "EVENT 24" in line:
                    raise BP35A1Error("PANA connection failed")
                if "EVENT 21" in line:
                    log.debug("now connecting...")
                    deadline = self._clock() + CONNECTION_TIMEOUT
            self._sleep(READ_INTERVAL)
        raise BP35A1Error("PANA connection timed out")

    def _send_udp(self, frame: bytes) -> None:
        header = f"SKSENDTO 1 {self.ipv6} 0E1A 1 {len(frame):04X} "
        log.debug("send [%s<%d bytes>]", header, len(frame))
        self._serial.write(header.encode("ascii") + frame + b"\r\n")
        self._wait_success()

    def _wait_udp_response(self, timeout: float = READ_TIMEOUT) -> bool:
        deadline = self._clock() + timeout
        while deadline > self._clock():
            if self._serial.in_waiting:
                line = self._read_line()
                if "ERXUDP" in line:
                    return self.handle_udp_response(line)
            self._sleep(READ_INTERVAL)
        return False

    def _handle_get(self, data: str) -> str | None:
        epc = _hex_field(data[0:2])
        try:
            command = CmdType(epc)
        except ValueError:
            log.debug("not supported EPC: %d", epc)
            return None
        decoder = _DECODERS[command]
        return self._decode(command, decoder, data, 4)

    def _handle_set(self, data: str) -> str | None:
        epc = _hex_field(data[0:2])
        if epc != CmdType.TOTAL_HISTORY_COLLECTION_DATE:
            log.debug("not supported EPC: %d", epc)
            return None
        end = 2 + CollectionDay.DATA_LENGTH
        if len(data) < end:
            return None
        return data[end:]

    def _decode(self, command: CmdType, decoder, data: str, offset: int) -> str | None:
        end = offset + decoder.DATA_LENGTH
        if len(data) < end:
            log.debug("short data for EPC: %d", int(command))
            return None
        self._readings[command] = decoder.parse(data[offset:end])
        return data[end:]