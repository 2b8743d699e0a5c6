# broutemeter

A client for the BP35A1 Wi-SUN module. It reads a Japanese low-voltage
smart electricity meter over the B-route by sending ECHONET Lite property
requests.

The package has no third-party dependencies. `BP35A1` takes any
serial-like object that has `write(data)`, `flush()`, `read(size)` and an
`in_waiting` count. A port opened with pyserial has all four, but you install
pyserial yourself. The constructor also takes `sleep` and `clock` functions,
which default to `time.sleep` and `time.monotonic`. Pass your own to drive
the client from tests without real waiting.

## Installation

```
pip install broutemeter
```

## Usage

```python
import serial  # pyserial, installed separately

from broutemeter.client import BP35A1, BP35A1Error

port = serial.Serial("/dev/ttyUSB0", 115200)
meter = BP35A1(port)

password = "password"
route_b_id = "00000000000000000000000000000000"

try:
    meter.set_echo_callback(False)
    meter.delete_session()
    meter.get_version()
    meter.assure_ascii_mode()

    meter.set_password(password)
    meter.set_id(route_b_id)

    meter.scan_channel()
    meter.get_ipv6_address()
    meter.set_channel()
    meter.set_pan_id()
    meter.request_and_wait_connection()
except BP35A1Error as exc:
    print("setup failed:", exc)
else:
    meter.request_coefficient()
    meter.request_power_unit()
    meter.request_total_power()
    meter.request_instantaneous_power()

    print(meter.instantaneous_power, "W")
    print(meter.total_power, "kWh")
```

### Setting up the module

Some setup methods raise `BP35A1Error` when the module answers `FAIL ER`
or does not answer in time:

- `get_version()`, `set_password(password)`, `set_id(rbid)`,
  `set_channel()`, `set_pan_id()` and `set_ascii_mode(use_ascii_mode)`
  raise on a failure reply.
- `scan_channel()` scans with durations 6 to 9. It returns the
  `ScanResult` it finds, with `channel`, `pan_id` and `addr`, and also
  stores it as `scan_result`. It raises if no PAN is found.
- `get_ipv6_address()` turns the scanned address into a link-local IPv6
  address. It stores the address as `ipv6` and also returns it.
- `request_and_wait_connection()` sends `SKJOIN` and waits for PANA
  authentication to finish. It raises if the connection fails or times out.

`get_ascii_mode()` returns whether the module already reports in ASCII.
`assure_ascii_mode()` writes ASCII mode to the module only when it is not
already on. This avoids needless writes to the module's flash memory.

`set_echo_callback(enabled)` and `delete_session()` send their commands
and then clear the buffer. `clear_buffer()` waits briefly, then discards
whatever the module has sent and returns it as text.

Some of these waits have no time limit. `get_version()`, `set_password()`,
`set_id()`, `set_channel()`, `set_pan_id()`, `set_ascii_mode()`,
`get_ascii_mode()` and `get_ipv6_address()` keep reading until the module
answers. If the module never answers, they never return. The scan and the
connection wait are the ones with timeouts.

### Reading the meter

Each `request_*` method sends a request for one property. It waits up to
five seconds for the meter's `ERXUDP` reply. It returns `True` when a valid
reply from the smart meter was decoded and stored, and `False` otherwise.

| Method | Property | Stored as |
| --- | --- | --- |
| `request_coefficient()` | 0xD3 | `coefficient` |
| `request_total_power()` | 0xE0 | `total_power` (kWh) |
| `request_power_unit()` | 0xE1 | `power_unit` |
| `request_current_total_power_histories()` | 0xE2 | `total_power_histories` |
| `request_total_history_collection_date()` | 0xE5 | `collection_day` |
| `request_instantaneous_power()` | 0xE7 | `instantaneous_power` (W) |
| `request_instantaneous_amperage()` | 0xE8 | `instantaneous_amperage` |
| `request_current_total_power()` | 0xEA | `current_total_power` (kWh) |

`set_total_history_collection_date(day)` writes the day whose history the
meter reports.

`get_properties(commands)` takes any list of `CmdType` values.
`set_properties(command, values)` writes one property. Both return the same
kind of result as the `request_*` methods.

`total_power` and `current_total_power` are converted to kWh by
`convert_total_power(power)`. The conversion multiplies the raw reading by
the coefficient and the power unit. Request the coefficient and the power
unit first: until they are read, both are 0 and the energy values come out
as 0.0. A raw reading that is negative or above 99999999 also converts to
0.0.

`handle_udp_response(response)` decodes a single `ERXUDP` line and stores
its readings. Replies whose object code is not `SMART_METER_ID` (`"028801"`)
are rejected.

Commands and discarded input are logged at debug level through the
`broutemeter.client` logger.

## Decoding frames

`broutemeter.responses` decodes the hexadecimal payload of each property.
Each class is built with its `parse(data)` class method, and
`DATA_LENGTH` gives the number of hex characters the payload takes up:

- `Coefficient` has `coefficient`.
- `TotalPower` has `total_power`.
- `PowerUnit` has `unit`.
- `TotalPowerHistories` has `day` and 48 `powers`.
- `CollectionDay` has `day`.
- `InstantaneousPower` has `power`, a signed value.
- `InstantaneousAmperage` has `amperage_r` and `amperage_t`, and
  `amperage()` gives their sum, in units of 0.1 A.
- `CurrentTotalPower` has `total_power` and the timestamp fields from
  `year` to `second`.

`power_unit_multiplier(code)` maps a unit code such as `"01"` to its
multiplier, here 0.1. An unknown code gives 0.0.

`broutemeter.client` has further helpers:

- `build_get_frame(commands)` and `build_set_frame(command, values)` build
  the raw ECHONET Lite request frames.
- `validate_ipv6_format(text)` checks for a fully written-out IPv6 address.
- `remove_prefix(text, prefix)` returns what follows the first occurrence
  of `prefix`.

## What it does not do

- It has no command-line tool. You call it from your own Python code.
- It does not open serial ports itself; you pass in an open port.
- It does not store, schedule or publish readings. Each value sits on the
  `BP35A1` object until the next reply replaces it.

## Running the tests

```
pip install -e ".[test]"
pytest
```