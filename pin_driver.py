import logging
import sys
import threading
import time
from enum import Enum
from typing import Protocol

import pigpio

import config
from errors import HardwareFaultError, InvalidConfigError

logger = logging.getLogger(__name__)


class PinMode(Enum):
    INPUT = 'input'
    OUTPUT = 'output'


class PinDriver(Protocol):
    """Low-level pin access. Every method may raise HardwareFaultError."""

    def set_mode(self, pin, mode: PinMode) -> None: ...

    def write_analog(self, pin, duty_cycle: float, frequency_hz: int) -> None: ...

    def read_analog(self, pin) -> float: ...

    def close(self) -> None: ...


class PigpioPinDriver:
    """PinDriver backed by the pigpio daemon.

    PWM goes through pigpio's DMA-timed PWM on BCM pins. The Pi has no
    analog inputs, so analog reads use an MCP3008 on SPI where the pin is
    the ADC channel (0-7).
    """

    _MODES = {PinMode.INPUT: pigpio.INPUT, PinMode.OUTPUT: pigpio.OUTPUT}

    def __init__(self, pwm_range=config.PWM_RANGE, spi_channel=config.ADC_SPI_CHANNEL,
                 spi_baud=config.ADC_SPI_BAUD, retries=config.PIGPIO_CONNECT_RETRIES):
        self.pwm_range = pwm_range
        self._spi_lock = threading.Lock()
        self._spi_handle = None
        self._spi_channel = spi_channel
        self._spi_baud = spi_baud
        self._configured_pwm = {}

        self.pi = pigpio.pi()

        # Note: pigpio sets .connected to 1 (connected) or 0 (not connected)
        if not self.pi.connected:
            # pigpiod may still be starting
            for _ in range(retries):
                time.sleep(0.5)
                self.pi = pigpio.pi()
                if self.pi.connected:
                    break
            if not self.pi.connected:
                raise HardwareFaultError(
                    "Failed to connect to pigpio daemon. Ensure pigpiod is enabled and running."
                )

        logger.info("PinDriver backend: pigpio, connected=%s", self.pi.connected)

    def set_mode(self, pin, mode):
        try:
            self.pi.set_mode(pin, self._MODES[mode])
        except pigpio.error as e:
            raise HardwareFaultError(f"set_mode pin={pin} mode={mode.value}: {e}") from e
        logger.debug("set_mode pin=%s mode=%s", pin, mode.value)

    def write_analog(self, pin, duty_cycle, frequency_hz):
        duty = int(round(max(0.0, min(1.0, duty_cycle)) * self.pwm_range))
        try:
            # Frequency and range only need to be pushed when they change
            if self._configured_pwm.get(pin) != frequency_hz:
                self.pi.set_PWM_frequency(pin, frequency_hz)
                self.pi.set_PWM_range(pin, self.pwm_range)
                self._configured_pwm[pin] = frequency_hz
            self.pi.set_PWM_dutycycle(pin, duty)
        except pigpio.error as e:
            self._configured_pwm.pop(pin, None)
            raise HardwareFaultError(
                f"write_analog pin={pin} duty={duty_cycle} freq={frequency_hz}: {e}"
            ) from e
        logger.debug("write_analog pin=%s duty=%s/%s freq=%s", pin, duty, self.pwm_range, frequency_hz)

    def read_analog(self, pin):
        if not 0 <= int(pin) <= 7:
            raise InvalidConfigError(f"MCP3008 channel must be 0-7, got {pin}")
        with self._spi_lock:
            try:
                if self._spi_handle is None:
                    self._spi_handle = self.pi.spi_open(self._spi_channel, self._spi_baud, 0)
                # start bit, single-ended + channel, padding
                count, rx = self.pi.spi_xfer(self._spi_handle, [1, (8 + int(pin)) << 4, 0])
            except pigpio.error as e:
                raise HardwareFaultError(f"read_analog channel={pin}: {e}") from e
        if count != 3:
            raise HardwareFaultError(f"read_analog channel={pin}: short SPI transfer ({count} bytes)")
        raw = ((rx[1] & 0x03) << 8) | rx[2]
        return raw / 1023.0

    def close(self):
        """Release SPI and disconnect from pigpiod"""
        try:
            for pin in list(self._configured_pwm):
                self.pi.set_PWM_dutycycle(pin, 0)
            if self._spi_handle is not None:
                self.pi.spi_close(self._spi_handle)
                self._spi_handle = None
        except pigpio.error as e:
            logger.warning("pigpio cleanup failed: %s", e)
        finally:
            self.pi.stop()


class SimulatedPinDriver:
    """In-memory PinDriver for development machines without pigpiod."""

    def __init__(self, write_latency=0.0):
        self.write_latency = write_latency
        self.modes = {}
        self.duty_cycles = {}
        self.analog_values = {}
        self._lock = threading.Lock()
        logger.info("PinDriver backend: simulated")

    def set_mode(self, pin, mode):
        with self._lock:
            self.modes[pin] = mode

    def write_analog(self, pin, duty_cycle, frequency_hz):
        if self.write_latency:
            time.sleep(self.write_latency)
        with self._lock:
            self.duty_cycles[pin] = (duty_cycle, frequency_hz)
        logger.debug("write_analog pin=%s duty=%s freq=%s", pin, duty_cycle, frequency_hz)

    def read_analog(self, pin):
        with self._lock:
            return self.analog_values.get(pin, 0.0)

    def close(self):
        pass


def create_pin_driver(name=config.PIN_DRIVER):
    if name == 'pigpio':
        if not sys.platform.startswith('linux'):
            logger.warning("pigpio driver selected on %s; pigpiod must be reachable over the network", sys.platform)
        return PigpioPinDriver()
    if name == 'simulated':
        return SimulatedPinDriver()
    raise InvalidConfigError(f"Unknown pin driver '{name}' (expected 'pigpio' or 'simulated')")
