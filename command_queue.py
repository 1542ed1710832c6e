import logging
import threading
from collections import deque
from concurrent.futures import Future
from threading import Lock

logger = logging.getLogger(__name__)


class Command:
    __slots__ = ('operation', 'future')

    def __init__(self, operation):
        self.operation = operation
        self.future = Future()


class CommandQueue:
    """
    Ordered execution of hardware operations.

    Operations are started in submission order by a single loop thread.
    In strict mode the loop runs each operation to completion before the
    next tick, so no two operations overlap. In pipelined mode every
    operation gets its own thread and the loop moves on immediately, with
    no limit on how many are in flight.

    The loop polls every `max_idle_ms` while the queue is empty and every
    `min_busy_ms` while there is a backlog.
    """

    def __init__(self, strict=True, max_idle_ms=150, min_busy_ms=1, autostart=True):
        if max_idle_ms < 0 or min_busy_ms < 0:
            raise ValueError("max_idle_ms and min_busy_ms must be >= 0")
        self.strict = strict
        self.max_idle = max_idle_ms / 1000.0
        self.min_busy = min_busy_ms / 1000.0
        self.queue = deque()
        self.lock = Lock()
        self._in_flight = set()
        self._stop = threading.Event()
        self._thread = None
        if autostart:
            self.start()

    def submit(self, operation):
        """Queue a zero-argument callable. Returns a Future for its result."""
        command = Command(operation)
        with self.lock:
            self.queue.append(command)
        return command.future

    def pending(self):
        """Number of commands waiting to be started"""
        with self.lock:
            return len(self.queue)

    def in_flight(self):
        """Number of pipelined operations currently running"""
        with self.lock:
            return len(self._in_flight)

    def tick(self):
        """
        Run one loop iteration.

        Returns the delay in seconds before the next iteration: `max_idle`
        if the queue was empty at the start of the tick, `min_busy` otherwise.
        """
        with self.lock:
            command = self.queue.popleft() if self.queue else None

        if command is None:
            return self.max_idle

        if self.strict:
            self._run(command)
        else:
            worker = threading.Thread(
                target=self._run_pipelined, args=(command,), name='command-queue-op', daemon=True
            )
            with self.lock:
                self._in_flight.add(worker)
            worker.start()
        return self.min_busy

    def _run(self, command):
        if not command.future.set_running_or_notify_cancel():
            return
        try:
            result = command.operation()
        except Exception as e:
            # Delivered to the submitter; the loop carries on
            logger.warning("command %r failed: %s", command.operation, e)
            command.future.set_exception(e)
        else:
            command.future.set_result(result)

    def _run_pipelined(self, command):
        try:
            self._run(command)
        finally:
            with self.lock:
                self._in_flight.discard(threading.current_thread())

    def _loop(self):
        delay = 0.0
        while not self._stop.wait(delay):
            delay = self.tick()

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='command-queue-loop', daemon=True)
        self._thread.start()
        logger.info(
            "command queue started (strict=%s, max_idle=%.3fs, min_busy=%.3fs)",
            self.strict, self.max_idle, self.min_busy,
        )

    def close(self):
        """Stop the loop; commands that never started are cancelled."""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None

        with self.lock:
            leftover = list(self.queue)
            self.queue.clear()
            running = list(self._in_flight)
        for command in leftover:
            command.future.cancel()

        # Operations that already started run to completion
        for worker in running:
            if worker is not threading.current_thread():
                worker.join()
        logger.info("command queue stopped (%d pending cancelled)", len(leftover))

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
