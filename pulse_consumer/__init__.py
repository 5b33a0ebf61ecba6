"""
Consume messages from Mozilla Pulse without broker boilerplate.

    from pulse_consumer import bind, new_connection

    conn = new_connection()  # PULSE_USERNAME / PULSE_PASSWORD from the environment
    conn.consume("", print, bind("#", "exchange/hgpushes/v2"), auto_ack=True)
"""

from .binding import Binding, bind
from .connection import Connection, new_connection
from .consumer import ConsumeSession
from .credentials import Credentials, resolve
from .errors import (
    ChannelError,
    ConnectError,
    ConsumeError,
    ExchangeDeclareError,
    PulseError,
    QueueBindError,
    QueueDeclareError,
)
from .transport import Delivery, PikaTransport, Transport

__all__ = [
    "Binding",
    "bind",
    "Connection",
    "new_connection",
    "ConsumeSession",
    "Credentials",
    "resolve",
    "Delivery",
    "PikaTransport",
    "Transport",
    "PulseError",
    "ConnectError",
    "ChannelError",
    "ExchangeDeclareError",
    "QueueDeclareError",
    "QueueBindError",
    "ConsumeError",
]
