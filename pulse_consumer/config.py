import os

DEFAULT_URL = "amqps://pulse.mozilla.org:5671"
DEFAULT_USER = "guest"
DEFAULT_PASSWORD = "guest"

USERNAME_ENV = "PULSE_USERNAME"
PASSWORD_ENV = "PULSE_PASSWORD"

HEARTBEAT_SEC = int(os.getenv("PULSE_HEARTBEAT_SEC", "30"))
POLL_SEC = float(os.getenv("PULSE_POLL_SEC", "1.0"))
