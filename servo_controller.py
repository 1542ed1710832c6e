import logging
import threading
from datetime import datetime, timezone
from functools import partial

from errors import ServoBusyError, ServoNotFoundError
from pin_driver import PinMode

logger = logging.getLogger(__name__)


def clamp_position(position):
    return max(0.0, min(1.0, float(position)))


def duty_cycle(position, duty_range):
    """Map a position in [0, 1] onto the servo's duty cycle window"""
    return duty_range.min + clamp_position(position) * (duty_range.max - duty_range.min)


def _now():
    return datetime.now(timezone.utc).isoformat()


class _ServoState:
    __slots__ = ('config', 'cache', 'pending', 'busy')

    def __init__(self, servo_config):
        self.config = servo_config
        self.cache = None     # last committed position
        self.pending = None   # newest target not yet written
        self.busy = False     # a write is in flight


class ServoController:
    """
    Drives the configured servos through a CommandQueue.

    queue_position() only records a target. A writer cycle running at
    `write_frequency_hz` picks up the newest target of every idle servo and
    submits one duty cycle write for it, so bursts of updates collapse into
    a single write and a servo never has two writes in flight.
    """

    def __init__(self, servos, queue, driver, write_frequency_hz=10, autostart=True):
        if write_frequency_hz <= 0:
            raise ValueError("write_frequency_hz must be > 0")
        self.queue = queue
        self.driver = driver
        self.period = 1.0 / write_frequency_hz
        self._servos = [_ServoState(s) for s in servos]
        self._lock = threading.Lock()
        self._listeners = []
        self._stop = threading.Event()
        self._thread = None
        if autostart:
            self.start()

    def __len__(self):
        return len(self._servos)

    def exists(self, servo_id):
        return isinstance(servo_id, int) and not isinstance(servo_id, bool) and 0 <= servo_id < len(self._servos)

    def _state(self, servo_id):
        if not self.exists(servo_id):
            raise ServoNotFoundError(servo_id)
        return self._servos[servo_id]

    def describe(self):
        return [
            {
                'id': s.config.id,
                'pins': s.config.pins.as_dict(),
                'dutyCycle': s.config.duty_cycle.as_dict(),
            }
            for s in self._servos
        ]

    def add_listener(self, callback):
        """callback(servo_id, reading) runs after every committed write"""
        self._listeners.append(callback)

    def init(self, position):
        """Put every signal pin in output mode and seed the first write."""
        futures = []
        for state in self._servos:
            futures.append(self.queue.submit(
                partial(self.driver.set_mode, state.config.pins.signal, PinMode.OUTPUT)
            ))
            self.queue_position(state.config.id, position)
        return futures

    def queue_position(self, servo_id, position):
        """Record a target for the next writer cycle. Returns the clamped value."""
        state = self._state(servo_id)
        position = clamp_position(position)
        with self._lock:
            state.pending = position
        return position

    def write(self, servo_id, position):
        """
        Submit a write right away instead of waiting for the writer cycle.

        Raises ServoBusyError while a previous write to the same servo is
        still in flight; the caller is expected to retry. A hardware fault
        shows up on the returned future and in the ERROR log; callers that
        drop the future (the HTTP layer does) only see the log entry.
        """
        state = self._state(servo_id)
        position = clamp_position(position)
        with self._lock:
            if state.busy:
                raise ServoBusyError(servo_id)
            state.busy = True
        return self._submit_write(state, position)

    def read(self, servo_id):
        state = self._state(servo_id)
        with self._lock:
            position = state.cache
        return {'timestamp': _now(), 'position': position}

    def cycle(self):
        """Run one writer cycle. Returns the futures of the writes it submitted."""
        batch = []
        with self._lock:
            for state in self._servos:
                if state.busy or state.pending is None:
                    continue
                batch.append((state, state.pending))
                state.pending = None
                state.busy = True
        # Submitted outside the lock, done callbacks may run inline
        return [self._submit_write(state, position) for state, position in batch]

    def _submit_write(self, state, position):
        servo = state.config
        dc = duty_cycle(position, servo.duty_cycle)
        future = self.queue.submit(
            partial(self.driver.write_analog, servo.pins.signal, dc, servo.pwm_frequency_hz)
        )
        future.add_done_callback(partial(self._on_written, state, position))
        return future

    def _on_written(self, state, position, future):
        servo_id = state.config.id
        failed = future.cancelled() or future.exception() is not None
        with self._lock:
            if not failed:
                state.cache = position
            state.busy = False

        if failed:
            reason = 'cancelled' if future.cancelled() else future.exception()
            logger.error("servo %s: write of position %s failed: %s", servo_id, position, reason)
            return

        reading = {'timestamp': _now(), 'position': position}
        for callback in self._listeners:
            try:
                callback(servo_id, reading)
            except Exception:
                logger.exception("servo %s: position listener failed", servo_id)

    def _loop(self):
        while not self._stop.wait(self.period):
            self.cycle()

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='servo-writer', daemon=True)
        self._thread.start()

    def close(self):
        """Stop the writer cycle"""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
