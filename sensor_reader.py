from datetime import datetime, timezone

from errors import SensorNotFoundError


def to_millivolts(value, reference_millivolts):
    return value * reference_millivolts


def millivolts_to_celsius(mv):
    # 10 mV per degree, 0 mV at 0 C
    return mv / 10


def millivolts_to_fahrenheit(mv):
    return (millivolts_to_celsius(mv) * 9 / 5) + 32


def temperature_reading(value, reference_millivolts):
    mv = to_millivolts(value, reference_millivolts)
    return {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'millivolts': mv,
        'celsius': millivolts_to_celsius(mv),
        'fahrenheit': millivolts_to_fahrenheit(mv),
    }


class SensorReader:
    """
    Reads analog sensors straight from the pin driver.

    Reads do not go through the CommandQueue: they do not change pin state
    and are safe to interleave with queued writes.
    """

    def __init__(self, sensors, driver, reference_millivolts=3300):
        self.sensors = list(sensors)
        self.driver = driver
        self.reference_millivolts = reference_millivolts

    def exists(self, sensor_id):
        return isinstance(sensor_id, int) and not isinstance(sensor_id, bool) and 0 <= sensor_id < len(self.sensors)

    def describe(self):
        return [{'id': s.id, 'pins': s.pins.as_dict()} for s in self.sensors]

    def read(self, sensor_id):
        """Normalized reading in [0, 1]"""
        if not self.exists(sensor_id):
            raise SensorNotFoundError(sensor_id)
        value = self.driver.read_analog(self.sensors[sensor_id].pins.signal)
        return max(0.0, min(1.0, value))

    def read_temperature(self, sensor_id):
        return temperature_reading(self.read(sensor_id), self.reference_millivolts)
