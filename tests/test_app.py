import pytest

from app import create_app, parse_position, shutdown
from errors import BadRequestError, InvalidConfigError

from conftest import SENSORS, SERVOS


@pytest.fixture
def board(driver):
    app, socketio = create_app(driver=driver, servos=SERVOS, sensors=SENSORS, start=False)
    yield app, socketio
    shutdown(app)


@pytest.fixture
def client(board):
    app, _ = board
    return app.test_client()


def run_writer(app, drain):
    services = app.extensions['board_playground']
    drain(services['queue'])
    services['servos'].cycle()
    drain(services['queue'])


def test_home(client):
    response = client.get('/')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'
    assert response.headers['Cache-Control'] == 'no-cache, no-store, must-revalidate'


def test_list_servos(client):
    servos = client.get('/servo').get_json()
    assert [s['id'] for s in servos] == [0, 1]
    assert servos[0]['pins']['signal'] == 18


def test_initial_position_written_on_startup(board, client, drain, driver):
    app, _ = board
    assert client.get('/servo/0/position').get_json()['position'] is None

    run_writer(app, drain)

    assert client.get('/servo/0/position').get_json()['position'] == pytest.approx(0.5)
    assert driver.writes[0][2] == pytest.approx(0.09)


def test_set_position_is_clamped_and_applied(board, client, drain):
    app, _ = board
    response = client.put('/servo/1/position', json={'position': 1.3})
    assert response.status_code == 202
    assert response.get_json() == {'id': 1, 'position': 1.0}

    run_writer(app, drain)

    assert client.get('/servo/1/position').get_json()['position'] == 1.0


def test_unknown_servo_is_not_found(client):
    response = client.get('/servo/5/position')
    assert response.status_code == 404
    assert response.get_json()['name'] == 'ServoNotFoundError'

    response = client.post('/servo/5/position', json={'position': 0.5})
    assert response.status_code == 404


@pytest.mark.parametrize('body', [{}, {'position': 'left'}, {'position': True}, {'position': None}])
def test_bad_position_body(client, body):
    response = client.put('/servo/0/position', json=body)
    assert response.status_code == 400
    assert response.get_json()['name'] == 'BadRequestError'


def test_parse_position_rejects_non_finite():
    with pytest.raises(BadRequestError):
        parse_position({'position': float('nan')})
    assert parse_position({'position': 0}) == 0


def test_reject_policy_answers_conflict_while_busy(driver):
    app, _ = create_app(driver=driver, servos=SERVOS, sensors=SENSORS, policy='reject', start=False)
    try:
        client = app.test_client()
        assert client.put('/servo/0/position', json={'position': 0.2}).status_code == 202

        response = client.put('/servo/0/position', json={'position': 0.3})
        assert response.status_code == 409
        assert response.get_json()['name'] == 'ServoBusyError'
    finally:
        shutdown(app)


def test_temperature(client, driver):
    driver.analog_values[0] = 0.1
    assert client.get('/temperature').get_json() == [
        {'id': 0, 'pins': {'signal': 0, 'power': 'PIN17', 'ground': 'PIN20'}}
    ]

    reading = client.get('/temperature/0').get_json()
    assert reading['celsius'] == pytest.approx(33)

    assert client.get('/temperature/3').status_code == 404


def test_hardware_fault_maps_to_bad_gateway(client, driver):
    driver.fail_reads = True
    response = client.get('/temperature/0')
    assert response.status_code == 502
    assert response.get_json()['name'] == 'HardwareFaultError'


def test_unknown_policy_rejected(driver):
    with pytest.raises(ValueError):
        create_app(driver=driver, servos=SERVOS, sensors=SENSORS, policy='yolo', start=False)


def test_socket_connect_receives_servo_state(board):
    app, socketio = board
    sio = socketio.test_client(app)
    received = sio.get_received()

    assert received[0]['name'] == 'servo_state'
    servos = received[0]['args'][0]['servos']
    assert [s['id'] for s in servos] == [0, 1]
    sio.disconnect()


def test_socket_servo_position_and_broadcast(board, drain):
    app, socketio = board
    sio = socketio.test_client(app)
    sio.get_received()

    sio.emit('servo_position', {'id': 0, 'position': 0.25})
    received = sio.get_received()
    assert received[0]['name'] == 'servo_queued'
    assert received[0]['args'][0] == {'id': 0, 'position': 0.25}

    run_writer(app, drain)

    updates = [msg['args'][0] for msg in sio.get_received() if msg['name'] == 'servo_updated']
    assert {'id': 0, 'position': 0.25} in [{'id': u['id'], 'position': u['position']} for u in updates]
    sio.disconnect()


def test_socket_servo_position_errors(board):
    app, socketio = board
    sio = socketio.test_client(app)
    sio.get_received()

    sio.emit('servo_position', {'id': 9, 'position': 0.25})
    received = sio.get_received()
    assert received[0]['name'] == 'error'
    assert received[0]['args'][0]['name'] == 'ServoNotFoundError'
    sio.disconnect()


def test_bad_sensor_channel_fails_startup(driver):
    with pytest.raises(InvalidConfigError):
        create_app(driver=driver, servos=SERVOS, sensors=[{'pins': {'signal': 12}}], start=False)


def test_socket_boolean_servo_id_is_not_found(board, driver):
    app, socketio = board
    sio = socketio.test_client(app)
    sio.get_received()

    sio.emit('servo_position', {'id': True, 'position': 0.9})
    received = sio.get_received()
    assert received[0]['name'] == 'error'
    assert received[0]['args'][0]['name'] == 'ServoNotFoundError'
    assert app.extensions['board_playground']['servos'].read(1)['position'] is None
    sio.disconnect()
