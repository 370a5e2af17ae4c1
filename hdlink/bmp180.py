"""BMP085/BMP180 barometric pressure and temperature sensor on an I2C bus."""

from __future__ import annotations

import time
import typing
from dataclasses import dataclass
from enum import IntEnum

DEFAULT_ADDRESS = 0x77

REG_CAL_AC1 = 0xAA
REG_CAL_AC2 = 0xAC
REG_CAL_AC3 = 0xAE
REG_CAL_AC4 = 0xB0
REG_CAL_AC5 = 0xB2
REG_CAL_AC6 = 0xB4
REG_CAL_B1 = 0xB6
REG_CAL_B2 = 0xB8
REG_CAL_MB = 0xBA
REG_CAL_MC = 0xBC
REG_CAL_MD = 0xBE
REG_CONTROL = 0xF4
REG_TEMPDATA = 0xF6
REG_PRESSUREDATA = 0xF6

READ_TEMPERATURE = 0x2E
READ_PRESSURE = 0x34

_REGISTER_WRITE_DELAY = 0.010
_WAIT_TIMES_US = (5000, 8000, 14000, 26000)

_SIGNED_FIELDS = ("ac1", "ac2", "ac3", "b1", "b2", "mb", "mc", "md")
_CALIBRATION_REGISTERS = (
    ("ac1", REG_CAL_AC1),
    ("ac2", REG_CAL_AC2),
    ("ac3", REG_CAL_AC3),
    ("ac4", REG_CAL_AC4),
    ("ac5", REG_CAL_AC5),
    ("ac6", REG_CAL_AC6),
    ("b1", REG_CAL_B1),
    ("b2", REG_CAL_B2),
    ("mb", REG_CAL_MB),
    ("mc", REG_CAL_MC),
    ("md", REG_CAL_MD),
)


class Mode(IntEnum):
    """Oversampling setting of a pressure measurement."""

    ULTRA_LOW_POWER = 0
    STANDARD = 1
    HIGHRES = 2
    ULTRA_HIGHRES = 3

    @property
    def wait_time(self) -> float:
        """Maximum conversion time of a pressure measurement, in seconds."""
        return _WAIT_TIMES_US[self.value] / 1_000_000


class Bus(typing.Protocol):
    """I2C master; failures are reported by raising ``OSError``."""

    def write(self, address: int, data: bytes) -> None: ...

    def read(self, address: int, size: int) -> bytes: ...


class Bmp180Error(Exception):
    """Raised when the sensor cannot be read or its data cannot be compensated."""


@dataclass(frozen=True)
class Calibration:
    """Factory calibration coefficients stored in the sensor's EEPROM."""

    ac1: int
    ac2: int
    ac3: int
    ac4: int
    ac5: int
    ac6: int
    b1: int
    b2: int
    mb: int
    mc: int
    md: int


def _s32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _u32(value: int) -> int:
    return value & 0xFFFFFFFF


def _s16(value: int) -> int:
    value &= 0xFFFF
    return value - (1 << 16) if value & 0x8000 else value


def _trunc_div(num: int, den: int) -> int:
    if den == 0:
        raise Bmp180Error("calibration data leads to a division by zero")
    quotient = abs(num) // abs(den)
    return quotient if (num >= 0) == (den > 0) else -quotient


def _b5(cal: Calibration, ut: int) -> int:
    x1 = _s32((ut - cal.ac6) * cal.ac5) >> 15
    x2 = _trunc_div(_s32(cal.mc << 11), _s32(x1 + cal.md))
    return _s32(x1 + x2)


def compute_temperature(cal: Calibration, ut: int) -> float:
    """True temperature in degrees Celsius from the raw reading ``ut``."""
    b5 = _b5(cal, ut)
    return (_s32(b5 + 8) >> 4) / 10.0


def compute_pressure(cal: Calibration, ut: int, up: int, mode: Mode = Mode.ULTRA_HIGHRES) -> float:
    """True pressure in pascals from the raw readings ``ut`` and ``up``."""
    mode = Mode(mode)
    b5 = _b5(cal, ut)

    b6 = _s32(b5 - 4000)
    x1 = (_s32(cal.b2 * _s32(b6 * b6)) >> 12) >> 11
    x2 = _s32(cal.ac2 * b6) >> 11
    x3 = _s32(x1 + x2)
    tmp = _s32(_s32(cal.ac1 * 4 + x3) << mode)
    b3 = _s32(tmp + 2) >> 2

    x1 = _s32(cal.ac3 * b6) >> 13
    x2 = _s32(cal.b1 * (_s32(b6 * b6) >> 12)) >> 16
    x3 = _s32(x1 + x2 + 2) >> 2
    b4 = _u32(cal.ac4 * _u32(x3 + 32768)) >> 15
    b7 = _u32(_u32(_u32(up) - _u32(b3)) * (50000 >> mode))

    if b4 == 0:
        raise Bmp180Error("calibration data leads to a division by zero")
    if b7 < 0x80000000:
        p = _u32(b7 << 1) // b4
    else:
        p = _u32((b7 // b4) << 1)
    p = _s32(p)

    x1 = _s32((p >> 8) * (p >> 8))
    x1 = _s32(x1 * 3038) >> 16
    x2 = _s32(-7357 * p) >> 16
    return float(p + (_s32(x1 + x2 + 3791) >> 4))


class Bmp180:
    """A sensor at ``address`` on ``bus``, measuring pressure in ``mode``."""

    def __init__(self, bus: Bus, address: int = DEFAULT_ADDRESS, mode: Mode = Mode.ULTRA_HIGHRES) -> None:
        self.bus = bus
        self.address = address
        self.mode = Mode(mode)
        self.calibration: Calibration | None = None

    def _set_register(self, reg: int, value: int) -> None:
        try:
            self.bus.write(self.address, bytes((reg & 0xFF, value & 0xFF)))
        except OSError as exc:
            raise Bmp180Error(f"cannot write register 0x{reg:02X}") from exc
        time.sleep(_REGISTER_WRITE_DELAY)

    def _get_register(self, reg: int) -> int:
        try:
            self.bus.write(self.address, bytes((reg & 0xFF,)))
            data = self.bus.read(self.address, 1)
        except OSError as exc:
            raise Bmp180Error(f"cannot read register 0x{reg:02X}") from exc
        if not data:
            raise Bmp180Error(f"no data from register 0x{reg:02X}")
        return data[0]

    def _get_word(self, reg: int) -> int:
        high = self._get_register(reg)
        low = self._get_register(reg + 1)
        return (high << 8) + low

    def read_calibration(self) -> Calibration:
        """Read the calibration coefficients and keep them for later readings."""
        words = {name: self._get_word(reg) for name, reg in _CALIBRATION_REGISTERS}
        for name in _SIGNED_FIELDS:
            words[name] = _s16(words[name])
        self.calibration = Calibration(**words)
        return self.calibration

    def _ensure_calibration(self) -> Calibration:
        if self.calibration is None:
            return self.read_calibration()
        return self.calibration

    def read_raw_temperature(self) -> int:
        """Start a temperature conversion and return the uncompensated value."""
        self._set_register(REG_CONTROL, READ_TEMPERATURE)
        return self._get_word(REG_TEMPDATA)

    def read_raw_pressure(self) -> int:
        """Start a pressure conversion and return the uncompensated value."""
        self._set_register(REG_CONTROL, READ_PRESSURE + (self.mode << 6))
        time.sleep(self.mode.wait_time)
        msb = self._get_register(REG_PRESSUREDATA)
        lsb = self._get_register(REG_PRESSUREDATA + 1)
        xlsb = self._get_register(REG_PRESSUREDATA + 2)
        return ((msb << 16) | (lsb << 8) | xlsb) >> (8 - self.mode)

    def temperature(self) -> float:
        """Measure the temperature in degrees Celsius."""
        cal = self._ensure_calibration()
        return compute_temperature(cal, self.read_raw_temperature())

    def pressure(self) -> float:
        """Measure the pressure in pascals."""
        cal = self._ensure_calibration()
        ut = self.read_raw_temperature()
        up = self.read_raw_pressure()
        return compute_pressure(cal, ut, up, self.mode)