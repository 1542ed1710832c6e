# Configuration settings for Board Playground
import os

# Server settings
HOST = '0.0.0.0'
PORT = int(os.environ.get('PORT', 36000))
DEBUG = False
API_VERSION = '0.1.0'

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_PATH = None  # e.g. '/var/log/board-playground/app.log'

# Pin driver backend: 'pigpio' on the Pi, 'simulated' on dev machines
PIN_DRIVER = os.environ.get('PIN_DRIVER', 'pigpio')
PIGPIO_CONNECT_RETRIES = 10  # x 0.5s while pigpiod is starting

# Command queue settings
QUEUE_STRICT = True      # True: one hardware operation at a time
QUEUE_MAX_IDLE_MS = 150  # poll interval while the queue is empty
QUEUE_MIN_BUSY_MS = 1    # poll interval while draining a backlog

# Servo writer settings
SERVO_WRITE_FREQUENCY_HZ = 10  # writer cycles per second
SERVO_POLICY = 'coalesce'      # 'coalesce' (last value wins) or 'reject' (409 while busy)
SERVO_INITIAL_POSITION = 0.5   # position written on startup

# PWM settings
SERVO_PWM_FREQUENCY = 50  # Hz, standard hobby servo period (20 ms)
PWM_RANGE = 10000         # duty resolution passed to pigpio

# MCP3008 ADC on SPI (analog reads)
ADC_SPI_CHANNEL = 0
ADC_CHANNELS = 8  # MCP3008
ADC_SPI_BAUD = 1_000_000
ADC_REFERENCE_MILLIVOLTS = 3300

# Servos (BCM numbering for signal pins, header pins for power/ground)
# Duty cycle is the fraction of the PWM period held high at position 0 and 1
SERVOS = [
    {
        'dutyCycle': {
            'min': 0.046,
            'max': 0.134
        },
        'pins': {
            'signal': 18,     # Hardware PWM capable
            'power': 'PIN2',
            'ground': 'PIN6'
        }
    },
    {
        'dutyCycle': {
            'min': 0.046,
            'max': 0.134
        },
        'pins': {
            'signal': 13,     # Hardware PWM capable
            'power': 'PIN4',
            'ground': 'PIN14'
        }
    }
]

# Temperature sensors (signal is the MCP3008 channel, 10 mV per degree C)
TEMPERATURE_SENSORS = [
    {
        'pins': {
            'signal': 0,
            'power': 'PIN17',
            'ground': 'PIN20'
        }
    }
]
