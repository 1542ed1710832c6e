from datetime import datetime

import pytest

from errors import HardwareFaultError, SensorNotFoundError
from sensor_reader import (
    SensorReader,
    millivolts_to_celsius,
    millivolts_to_fahrenheit,
    temperature_reading,
    to_millivolts,
)


def test_conversions():
    assert to_millivolts(0.5, 1800) == pytest.approx(900)
    assert millivolts_to_celsius(250) == pytest.approx(25)
    assert millivolts_to_fahrenheit(0) == pytest.approx(32)
    assert millivolts_to_fahrenheit(1000) == pytest.approx(212)


def test_temperature_reading_payload():
    reading = temperature_reading(0.1, 3300)
    assert reading['millivolts'] == pytest.approx(330)
    assert reading['celsius'] == pytest.approx(33)
    assert reading['fahrenheit'] == pytest.approx(91.4)
    datetime.fromisoformat(reading['timestamp'])


def test_read_goes_straight_to_driver(sensor_configs, driver):
    driver.analog_values[0] = 0.25
    reader = SensorReader(sensor_configs, driver, reference_millivolts=3300)

    assert reader.read(0) == pytest.approx(0.25)
    assert reader.read_temperature(0)['celsius'] == pytest.approx(82.5)


def test_read_clamps_out_of_range_driver_values(sensor_configs, driver):
    driver.analog_values[0] = 1.02
    reader = SensorReader(sensor_configs, driver)
    assert reader.read(0) == 1.0


def test_unknown_sensor(sensor_configs, driver):
    reader = SensorReader(sensor_configs, driver)
    assert reader.exists(0)
    assert not reader.exists(1)
    with pytest.raises(SensorNotFoundError):
        reader.read(1)


def test_driver_fault_propagates(sensor_configs, driver):
    driver.fail_reads = True
    reader = SensorReader(sensor_configs, driver)
    with pytest.raises(HardwareFaultError):
        reader.read(0)
