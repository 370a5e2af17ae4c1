import pytest

from hdlink.bmp180 import (
    Bmp180,
    Bmp180Error,
    Calibration,
    Mode,
    compute_pressure,
    compute_temperature,
)

DATASHEET = Calibration(
    ac1=408,
    ac2=-72,
    ac3=-14383,
    ac4=32741,
    ac5=32757,
    ac6=23153,
    b1=6190,
    b2=4,
    mb=-32768,
    mc=-8711,
    md=2868,
)
UT = 27898
UP = 23843


class FakeBus:
    def __init__(self, cal, ut, up, address=0x77):
        self.address = address
        self.ut = ut
        self.up = up
        self.pointer = 0
        self.writes = []
        self.memory = {}
        regs = [
            (0xAA, cal.ac1), (0xAC, cal.ac2), (0xAE, cal.ac3), (0xB0, cal.ac4),
            (0xB2, cal.ac5), (0xB4, cal.ac6), (0xB6, cal.b1), (0xB8, cal.b2),
            (0xBA, cal.mb), (0xBC, cal.mc), (0xBE, cal.md),
        ]
        for reg, value in regs:
            word = value & 0xFFFF
            self.memory[reg] = word >> 8
            self.memory[reg + 1] = word & 0xFF

    def write(self, address, data):
        assert address == self.address
        self.writes.append(bytes(data))
        if len(data) == 1:
            self.pointer = data[0]
            return
        reg, value = data[0], data[1]
        if reg == 0xF4 and value == 0x2E:
            self.memory[0xF6] = self.ut >> 8
            self.memory[0xF7] = self.ut & 0xFF
        elif reg == 0xF4 and (value & 0x3F) == 0x34:
            mode = value >> 6
            raw = self.up << (8 - mode)
            self.memory[0xF6] = (raw >> 16) & 0xFF
            self.memory[0xF7] = (raw >> 8) & 0xFF
            self.memory[0xF8] = raw & 0xFF

    def read(self, address, size):
        assert address == self.address
        return bytes([self.memory.get(self.pointer, 0)])


class BrokenBus:
    def write(self, address, data):
        raise OSError("bus error")

    def read(self, address, size):
        raise OSError("bus error")


def test_datasheet_temperature():
    assert compute_temperature(DATASHEET, UT) == 15.0


def test_datasheet_pressure():
    assert compute_pressure(DATASHEET, UT, UP, Mode.ULTRA_LOW_POWER) == 69964.0


def test_sensor_reads_datasheet_example():
    sensor = Bmp180(FakeBus(DATASHEET, UT, UP), 0x77, Mode.ULTRA_LOW_POWER)
    assert sensor.temperature() == 15.0
    assert sensor.pressure() == 69964.0


def test_read_calibration_decodes_signed_words():
    sensor = Bmp180(FakeBus(DATASHEET, UT, UP), 0x77, Mode.STANDARD)
    assert sensor.read_calibration() == DATASHEET
    assert sensor.calibration == DATASHEET


@pytest.mark.parametrize("mode", list(Mode))
def test_raw_pressure_round_trip(mode):
    sensor = Bmp180(FakeBus(DATASHEET, UT, UP), 0x77, mode)
    assert sensor.read_raw_pressure() == UP


def test_raw_temperature():
    sensor = Bmp180(FakeBus(DATASHEET, UT, UP), 0x77, Mode.STANDARD)
    assert sensor.read_raw_temperature() == UT


def test_control_register_commands():
    bus = FakeBus(DATASHEET, UT, UP)
    sensor = Bmp180(bus, 0x77, Mode.ULTRA_HIGHRES)
    sensor.read_raw_temperature()
    sensor.read_raw_pressure()
    assert bytes([0xF4, 0x2E]) in bus.writes
    assert bytes([0xF4, 0x34 + (3 << 6)]) in bus.writes


@pytest.mark.parametrize("mode", list(Mode))
def test_sensor_matches_compute_functions(mode):
    sensor = Bmp180(FakeBus(DATASHEET, UT, UP), 0x77, mode)
    assert sensor.pressure() == compute_pressure(DATASHEET, UT, UP, mode)
    assert sensor.temperature() == compute_temperature(DATASHEET, UT)


def test_pressure_grows_with_raw_value():
    values = [
        compute_pressure(DATASHEET, UT, up, Mode.ULTRA_LOW_POWER)
        for up in range(20000, 30000, 50)
    ]
    assert values == sorted(values)
    assert values[0] < values[-1]


def test_temperature_grows_with_raw_value():
    values = [compute_temperature(DATASHEET, ut) for ut in range(25000, 31000, 100)]
    assert values == sorted(values)
    assert values[0] < values[-1]


def test_bus_failure_raises():
    sensor = Bmp180(BrokenBus(), 0x77, Mode.STANDARD)
    with pytest.raises(Bmp180Error):
        sensor.read_calibration()
    with pytest.raises(Bmp180Error):
        sensor.read_raw_temperature()


def test_zero_divisor_raises():
    cal = Calibration(
        ac1=408, ac2=-72, ac3=-14383, ac4=32741, ac5=0, ac6=23153,
        b1=6190, b2=4, mb=-32768, mc=-8711, md=0,
    )
    with pytest.raises(Bmp180Error):
        compute_temperature(cal, UT)
    with pytest.raises(Bmp180Error):
        compute_pressure(cal, UT, UP, Mode.STANDARD)


def test_mode_wait_times():
    assert Mode(0).wait_time == 5000 / 1_000_000
    assert Mode(3).wait_time == 26000 / 1_000_000
    waits = [Mode(value).wait_time for value in range(4)]
    assert waits == sorted(waits)