import threading
import time

import pytest

from errors import HardwareFaultError
from hardware import load_sensors, load_servos

SERVOS = [
    {'dutyCycle': {'min': 0.046, 'max': 0.134}, 'pins': {'signal': 18, 'power': 'PIN2', 'ground': 'PIN6'}},
    {'dutyCycle': {'min': 0.046, 'max': 0.134}, 'pins': {'signal': 13, 'power': 'PIN4', 'ground': 'PIN14'}},
]

SENSORS = [
    {'pins': {'signal': 0, 'power': 'PIN17', 'ground': 'PIN20'}},
]


class FakePinDriver:
    """Records every call. Writes can be made to fail or to block on `gate`."""

    def __init__(self):
        self.calls = []
        self.analog_values = {}
        self.fail_writes = False
        self.fail_reads = False
        self.gate = None
        self.write_delay = 0.0
        self.closed = False
        self.active = {}
        self.max_active = {}
        self._lock = threading.Lock()

    def set_mode(self, pin, mode):
        with self._lock:
            self.calls.append(('set_mode', pin, mode))

    def write_analog(self, pin, duty_cycle, frequency_hz):
        with self._lock:
            self.active[pin] = self.active.get(pin, 0) + 1
            self.max_active[pin] = max(self.max_active.get(pin, 0), self.active[pin])
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.write_delay:
                time.sleep(self.write_delay)
            if self.fail_writes:
                raise HardwareFaultError(f"write_analog pin={pin}: simulated fault")
            with self._lock:
                self.calls.append(('write_analog', pin, duty_cycle, frequency_hz))
        finally:
            with self._lock:
                self.active[pin] -= 1

    def read_analog(self, pin):
        if self.fail_reads:
            raise HardwareFaultError(f"read_analog channel={pin}: simulated fault")
        return self.analog_values.get(pin, 0.0)

    def close(self):
        self.closed = True

    @property
    def writes(self):
        with self._lock:
            return [call for call in self.calls if call[0] == 'write_analog']


@pytest.fixture
def driver():
    return FakePinDriver()


@pytest.fixture
def servo_configs():
    return load_servos(SERVOS)


@pytest.fixture
def sensor_configs():
    return load_sensors(SENSORS)


@pytest.fixture
def drain():
    """Tick a manually driven CommandQueue until its backlog is empty."""

    def _drain(queue):
        ticks = 0
        while queue.pending():
            queue.tick()
            ticks += 1
        return ticks

    return _drain


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or the timeout expires."""

    def _wait_for(predicate, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.005)
        return predicate()

    return _wait_for
