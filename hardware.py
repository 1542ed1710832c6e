"""
Static hardware configuration.

Turns the raw SERVOS / TEMPERATURE_SENSORS entries from config.py into
immutable records. A single mapping is accepted wherever a list is expected
and is normalized here, so the rest of the code only ever sees sequences.
"""
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from errors import InvalidConfigError


@dataclass(frozen=True)
class Pins:
    signal: Any
    power: Optional[Any] = None
    ground: Optional[Any] = None

    def as_dict(self):
        return {'signal': self.signal, 'power': self.power, 'ground': self.ground}


@dataclass(frozen=True)
class DutyCycleRange:
    min: float
    max: float

    def as_dict(self):
        return {'min': self.min, 'max': self.max}


@dataclass(frozen=True)
class ServoConfig:
    id: int
    pins: Pins
    duty_cycle: DutyCycleRange
    pwm_frequency_hz: int = 50


@dataclass(frozen=True)
class SensorConfig:
    id: int
    pins: Pins


def _as_list(entries, what):
    if isinstance(entries, Mapping):
        entries = [entries]
    if not entries:
        raise InvalidConfigError(f"Require at least 1 {what} configuration!")
    return list(entries)


def _load_pins(entry, what, idx):
    pins = entry.get('pins') if isinstance(entry, Mapping) else None
    if not isinstance(pins, Mapping):
        raise InvalidConfigError(f"{what} {idx}: configuration requires property 'pins'!")
    signal = pins.get('signal')
    if signal is None or signal == '':
        raise InvalidConfigError(f"{what} {idx}: configuration requires property 'pins.signal'!")
    return Pins(signal=signal, power=pins.get('power'), ground=pins.get('ground'))


def _load_duty_cycle(entry, idx):
    duty = entry.get('dutyCycle')
    if not isinstance(duty, Mapping):
        raise InvalidConfigError(f"servo {idx}: configuration requires property 'dutyCycle'!")
    for key in ('min', 'max'):
        if not isinstance(duty.get(key), (int, float)) or isinstance(duty.get(key), bool):
            raise InvalidConfigError(f"servo {idx}: configuration requires numeric 'dutyCycle.{key}'!")
    low, high = float(duty['min']), float(duty['max'])
    if not 0.0 <= low < high <= 1.0:
        raise InvalidConfigError(
            f"servo {idx}: 'dutyCycle' needs 0 <= min < max <= 1 (got min={low}, max={high})"
        )
    return DutyCycleRange(min=low, max=high)


def load_servos(entries, pwm_frequency_hz=50):
    """Validate raw servo entries and assign ids by list position."""
    servos = []
    for idx, entry in enumerate(_as_list(entries, 'servo')):
        servos.append(ServoConfig(
            id=idx,
            pins=_load_pins(entry, 'servo', idx),
            duty_cycle=_load_duty_cycle(entry, idx),
            pwm_frequency_hz=int(entry.get('pwmFrequency', pwm_frequency_hz)),
        ))
    return servos


def load_sensors(entries, adc_channels=8):
    """
    Validate raw temperature sensor entries and assign ids by list position.

    A sensor's signal pin is its ADC channel and must be in range(adc_channels).
    """
    sensors = []
    for idx, entry in enumerate(_as_list(entries, 'temperature sensor')):
        pins = _load_pins(entry, 'temperature sensor', idx)
        channel = pins.signal
        if isinstance(channel, bool) or not isinstance(channel, int) or not 0 <= channel < adc_channels:
            raise InvalidConfigError(
                f"temperature sensor {idx}: 'pins.signal' must be an ADC channel 0-{adc_channels - 1}, got {channel!r}"
            )
        sensors.append(SensorConfig(id=idx, pins=pins))
    return sensors
