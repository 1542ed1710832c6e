from enum import Enum


class ErrorKind(Enum):
    NOT_FOUND = 'not_found'
    BUSY = 'busy'
    HARDWARE_FAULT = 'hardware_fault'
    INVALID_CONFIG = 'invalid_config'
    BAD_REQUEST = 'bad_request'


class ControllerError(Exception):
    """Base error; `kind` is the discriminant callers dispatch on."""

    kind = None

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ServoNotFoundError(ControllerError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, servo_id):
        super().__init__(f"Servo {servo_id} is not configured")
        self.servo_id = servo_id


class SensorNotFoundError(ControllerError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, sensor_id):
        super().__init__(f"Temperature sensor {sensor_id} is not configured")
        self.sensor_id = sensor_id


class ServoBusyError(ControllerError):
    kind = ErrorKind.BUSY

    def __init__(self, servo_id):
        super().__init__(f"Servo {servo_id} is busy, retry later")
        self.servo_id = servo_id


class HardwareFaultError(ControllerError):
    kind = ErrorKind.HARDWARE_FAULT


class InvalidConfigError(ControllerError):
    kind = ErrorKind.INVALID_CONFIG


class BadRequestError(ControllerError):
    kind = ErrorKind.BAD_REQUEST
