"""PZEM-004T energy meter protocol: the legacy 7-byte commands and v3.0 Modbus."""

from __future__ import annotations

import math
import typing
from dataclasses import dataclass

READ_TIMEOUT = 1.0
DEFAULT_ADDRESS = 0xF8
LEGACY_IP = bytes((192, 168, 1, 1))
MAX_POWER_ALARM = 25000

_LEGACY_FRAME_SIZE = 7
_LEGACY_DATA_SIZE = _LEGACY_FRAME_SIZE - 2

PZEM_VOLTAGE = 0xB0
RESP_VOLTAGE = 0xA0
PZEM_CURRENT = 0xB1
RESP_CURRENT = 0xA1
PZEM_POWER = 0xB2
RESP_POWER = 0xA2
PZEM_ENERGY = 0xB3
RESP_ENERGY = 0xA3
PZEM_SET_ADDRESS = 0xB4
RESP_SET_ADDRESS = 0xA4

CMD_RHR = 0x03
CMD_RIR = 0x04
CMD_WSR = 0x06
CMD_CAL = 0x41
CMD_REST = 0x42

WREG_ALARM_THR = 0x0001
WREG_ADDR = 0x0002

_REGISTER_COUNT = 0x0A
_VALUES_RESPONSE_SIZE = 25
_COMMAND_FRAME_SIZE = 8


def _build_crc16_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ 0xA001 if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC16_TABLE = _build_crc16_table()


def crc8(data: bytes) -> int:
    """Checksum of the legacy protocol: the byte sum modulo 256."""
    return sum(data) & 0xFF


def crc16(data: bytes) -> int:
    """Modbus CRC-16 of ``data``."""
    crc = 0xFFFF
    for byte in data:
        crc = (crc >> 8) ^ _CRC16_TABLE[(byte ^ crc) & 0xFF]
    return crc


def check_crc16(frame: bytes) -> bool:
    """Tell whether the last two bytes of ``frame`` are the CRC of the rest, low byte first."""
    if len(frame) <= 2:
        return False
    expected = crc16(frame[:-2])
    return (frame[-2] | frame[-1] << 8) == expected


def with_crc16(frame: bytes) -> bytes:
    """Return ``frame`` followed by its CRC-16, low byte first."""
    frame = bytes(frame)
    return frame + crc16(frame).to_bytes(2, "little")


class Transport(typing.Protocol):
    """Serial line the meter is attached to."""

    def flush(self) -> None: ...

    def write(self, data: bytes) -> None: ...

    def read(self, size: int, timeout: float) -> bytes: ...


class PzemError(Exception):
    """Raised when the meter does not answer or answers with a bad frame."""


@dataclass
class PzemValues:
    """Readings of a v3.0 meter."""

    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0
    energy: float = 0.0
    frequency: float = 0.0
    pf: float = 0.0
    alarms: int = 0


def _word(response: bytes, pos: int) -> int:
    return response[pos] << 8 | response[pos + 1]


def _long(response: bytes, pos: int) -> int:
    return _word(response, pos) | _word(response, pos + 2) << 16


class PzemMeter:
    """A meter speaking the legacy protocol (``version`` 0) or Modbus v3.0."""

    def __init__(self, transport: Transport, version: int = 0, address: int = DEFAULT_ADDRESS) -> None:
        self.transport = transport
        self.version = version
        self.address = address
        self.values = PzemValues()

    def _read_exactly(self, size: int) -> bytes:
        received = b""
        for _ in range(2):
            received += self.transport.read(size - len(received), READ_TIMEOUT)
            if len(received) >= size:
                break
        return received

    def _legacy_command(self, cmd: int, data: int, resp: int) -> bytes:
        frame = bytes((cmd,)) + LEGACY_IP + bytes((data,))
        frame += bytes((crc8(frame),))
        self.transport.flush()
        self.transport.write(frame)

        answer = self._read_exactly(_LEGACY_FRAME_SIZE)
        if len(answer) < _LEGACY_FRAME_SIZE:
            raise PzemError("no answer from meter")
        if answer[6] != crc8(answer[:-1]):
            raise PzemError("bad checksum in answer")
        if answer[0] != resp:
            raise PzemError(f"unexpected answer code 0x{answer[0]:02X}")
        return answer[1 : 1 + _LEGACY_DATA_SIZE]

    def _receive(self, size: int) -> bytes:
        answer = self._read_exactly(size)
        if len(answer) < size:
            return answer
        if not check_crc16(answer):
            return b""
        return answer

    def _send_command(self, cmd: int, register: int, value: int, check: bool) -> None:
        frame = with_crc16(
            bytes((self.address & 0xFF, cmd))
            + (register & 0xFFFF).to_bytes(2, "big")
            + (value & 0xFFFF).to_bytes(2, "big")
        )
        self.transport.flush()
        self.transport.write(frame)
        if check:
            answer = self._receive(_COMMAND_FRAME_SIZE)
            if not answer:
                raise PzemError("no valid answer from meter")
            if answer != frame:
                raise PzemError("meter did not echo the command")

    def set_legacy_address(self) -> None:
        """Announce the fixed address to a legacy meter."""
        self._legacy_command(PZEM_SET_ADDRESS, 0, RESP_SET_ADDRESS)

    def voltage(self) -> float:
        """Line voltage in volts."""
        if self.version:
            return self.values.voltage
        data = self._legacy_command(PZEM_VOLTAGE, 0, RESP_VOLTAGE)
        return (data[0] << 8) + data[1] + data[2] / 10.0

    def current(self) -> float:
        """Load current in amperes."""
        if self.version:
            return self.values.current
        data = self._legacy_command(PZEM_CURRENT, 0, RESP_CURRENT)
        return (data[0] << 8) + data[1] + data[2] / 100.0

    def power(self) -> float:
        """Active power in watts."""
        if self.version:
            return self.values.power
        data = self._legacy_command(PZEM_POWER, 0, RESP_POWER)
        return float((data[0] << 8) + data[1])

    def energy(self) -> float:
        """Energy counter: watt-hours on a legacy meter, the v3.0 raw value divided by 1000 otherwise."""
        if self.version:
            return self.values.energy
        data = self._legacy_command(PZEM_ENERGY, 0, RESP_ENERGY)
        return float((data[0] << 16) + (data[1] << 8) + data[2])

    def frequency(self) -> float:
        """Line frequency in hertz; NaN on a legacy meter."""
        if self.version:
            return self.values.frequency
        return math.nan

    def update_values(self) -> PzemValues:
        """Read all input registers of a v3.0 meter and store them in ``values``."""
        self._send_command(CMD_RIR, 0x0000, _REGISTER_COUNT, check=False)
        response = self._receive(_VALUES_RESPONSE_SIZE)
        if len(response) != _VALUES_RESPONSE_SIZE:
            raise PzemError("incomplete or corrupt register answer")
        self.values = PzemValues(
            voltage=_word(response, 3) / 10.0,
            current=_long(response, 5) / 1000.0,
            power=_long(response, 9) / 10.0,
            energy=_long(response, 13) / 1000.0,
            frequency=_word(response, 17) / 10.0,
            pf=_word(response, 19) / 100.0,
            alarms=_word(response, 21),
        )
        return self.values

    def set_address(self, addr: int) -> None:
        """Give a v3.0 meter a new slave address in 0x01..0xF7."""
        if not 0x01 <= addr <= 0xF7:
            raise ValueError(f"address 0x{addr:02X} is outside 0x01..0xF7")
        self._send_command(CMD_WSR, WREG_ADDR, addr, check=True)
        self.address = addr

    def set_power_alarm(self, watts: int) -> None:
        """Set the power alarm threshold, limited to 25000 W."""
        watts = min(watts, MAX_POWER_ALARM)
        self._send_command(CMD_WSR, WREG_ALARM_THR, watts, check=True)