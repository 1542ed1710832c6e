import atexit
import logging
import math

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit

import config
from command_queue import CommandQueue
from errors import BadRequestError, ControllerError, ErrorKind, SensorNotFoundError, ServoNotFoundError
from hardware import load_sensors, load_servos
from log import configure_logging
from pin_driver import create_pin_driver
from sensor_reader import SensorReader
from servo_controller import ServoController, clamp_position

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.BUSY: 409,
    ErrorKind.HARDWARE_FAULT: 502,
    ErrorKind.INVALID_CONFIG: 500,
}


def parse_position(data):
    """Pull a finite numeric 'position' out of a request payload"""
    if not isinstance(data, dict) or 'position' not in data:
        raise BadRequestError("Body requires property 'position'")
    position = data['position']
    if isinstance(position, bool) or not isinstance(position, (int, float)) or not math.isfinite(position):
        raise BadRequestError("'position' must be a finite number between 0 and 1")
    return position


def create_app(driver=None, servos=None, sensors=None, policy=None, start=True):
    """
    Build the Flask app and wire the hardware services behind it.

    Returns (app, socketio). With start=False the command queue and servo
    writer loops are not started, so callers can drive them by hand.
    """
    servo_configs = load_servos(config.SERVOS if servos is None else servos,
                                pwm_frequency_hz=config.SERVO_PWM_FREQUENCY)
    sensor_configs = load_sensors(config.TEMPERATURE_SENSORS if sensors is None else sensors,
                                  adc_channels=config.ADC_CHANNELS)
    policy = policy or config.SERVO_POLICY
    if policy not in ('coalesce', 'reject'):
        raise ValueError(f"Unknown servo policy '{policy}'")

    if driver is None:
        driver = create_pin_driver()
    command_queue = CommandQueue(
        strict=config.QUEUE_STRICT,
        max_idle_ms=config.QUEUE_MAX_IDLE_MS,
        min_busy_ms=config.QUEUE_MIN_BUSY_MS,
        autostart=start,
    )
    servo_controller = ServoController(
        servo_configs, command_queue, driver,
        write_frequency_hz=config.SERVO_WRITE_FREQUENCY_HZ,
        autostart=start,
    )
    sensor_reader = SensorReader(sensor_configs, driver, config.ADC_REFERENCE_MILLIVOLTS)
    servo_controller.init(config.SERVO_INITIAL_POSITION)

    app = Flask(__name__)
    app.extensions['board_playground'] = {
        'driver': driver,
        'queue': command_queue,
        'servos': servo_controller,
        'sensors': sensor_reader,
    }
    socketio = SocketIO(app, async_mode='threading', logger=config.DEBUG, engineio_logger=config.DEBUG)

    def set_position(servo_id, position):
        if not servo_controller.exists(servo_id):
            raise ServoNotFoundError(servo_id)
        if policy == 'reject':
            servo_controller.write(servo_id, position)
            return clamp_position(position)
        return servo_controller.queue_position(servo_id, position)

    def broadcast_position(servo_id, reading):
        socketio.emit('servo_updated', {'id': servo_id, **reading})

    servo_controller.add_listener(broadcast_position)

    @app.after_request
    def add_cache_headers(response):
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'
        return response

    @app.errorhandler(ControllerError)
    def handle_controller_error(err):
        status = ERROR_STATUS.get(err.kind, 500)
        if status >= 500:
            logger.error("%s: %s", type(err).__name__, err.message)
        return jsonify({'message': err.message, 'name': type(err).__name__}), status

    @app.route('/')
    def index():
        return jsonify({'version': config.API_VERSION, 'status': 'healthy'})

    @app.route('/servo')
    def list_servos():
        return jsonify(servo_controller.describe())

    @app.route('/servo/<int:servo_id>/position', methods=['GET'])
    def get_servo_position(servo_id):
        if not servo_controller.exists(servo_id):
            raise ServoNotFoundError(servo_id)
        return jsonify(servo_controller.read(servo_id))

    @app.route('/servo/<int:servo_id>/position', methods=['PUT', 'POST'])
    def put_servo_position(servo_id):
        if not servo_controller.exists(servo_id):
            raise ServoNotFoundError(servo_id)
        position = set_position(servo_id, parse_position(request.get_json(silent=True)))
        return jsonify({'id': servo_id, 'position': position}), 202

    @app.route('/temperature')
    def list_sensors():
        return jsonify(sensor_reader.describe())

    @app.route('/temperature/<int:sensor_id>')
    def get_temperature(sensor_id):
        if not sensor_reader.exists(sensor_id):
            raise SensorNotFoundError(sensor_id)
        return jsonify(sensor_reader.read_temperature(sensor_id))

    @socketio.on('connect')
    def handle_connect(auth=None):
        logger.info("client %s connected", request.sid)
        emit('servo_state', {
            'servos': [
                {'id': servo_id, **servo_controller.read(servo_id)}
                for servo_id in range(len(servo_controller))
            ]
        })

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        logger.info("client %s disconnected", request.sid)

    @socketio.on('servo_position')
    def handle_servo_position(data):
        try:
            servo_id = data.get('id') if isinstance(data, dict) else None
            if not servo_controller.exists(servo_id):
                raise ServoNotFoundError(servo_id)
            position = set_position(servo_id, parse_position(data))
        except ControllerError as e:
            logger.info("servo_position rejected from %s: %s", request.sid, e.message)
            emit('error', {'message': e.message, 'name': type(e).__name__})
            return
        emit('servo_queued', {'id': servo_id, 'position': position})

    return app, socketio


def shutdown(app):
    """Stop the writer cycle and queue, then release the pins"""
    services = app.extensions['board_playground']
    services['servos'].close()
    services['queue'].close()
    services['driver'].close()


if __name__ == '__main__':
    configure_logging(config.LOG_LEVEL, log_path=config.LOG_PATH)
    app, socketio = create_app()
    atexit.register(shutdown, app)

    # Under systemd this uses Werkzeug in threading mode; allow explicitly
    socketio.run(
        app,
        host=config.HOST,
        port=config.PORT,
        debug=config.DEBUG,
        allow_unsafe_werkzeug=True,
    )
