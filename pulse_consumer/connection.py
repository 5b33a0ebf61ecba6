"""
Pulse broker connection.

Build one with `new_connection()`; it resolves credentials up front but does
not touch the network. The broker is dialed on the first `consume()` call
(or an explicit `connect()`), at most once per connection.

    conn = new_connection()                    # guest@pulse.mozilla.org
    conn.set_url("amqp://localhost:5672")      # non-production broker
    conn.consume("", on_message, bind("#", "exchange/taskcluster-queue/v1/task-completed"))
"""

import logging
import threading
from typing import Callable, Mapping, Optional

from .binding import Binding
from .consumer import consume
from .credentials import Credentials, resolve
from .errors import ConnectError
from .transport import Delivery, PikaTransport, Transport

logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, credentials: Credentials, transport: Transport):
        self.user = credentials.user
        self.password = credentials.password
        self.url = credentials.url
        # snapshot from resolution; set_url() only changes self.url
        self.credentials = credentials
        self.transport = transport
        self.handle = None
        self.lock = threading.RLock()

    @property
    def connected(self) -> bool:
        return self.handle is not None

    def set_url(self, url: str):
        """Point the connection at another broker. Has no effect once dialed."""
        self.url = url

    def connect(self):
        if self.handle is not None:
            return self.handle
        with self.lock:
            if self.handle is None:
                try:
                    self.handle = self.transport.dial(self.url)
                except Exception as e:
                    logger.error("Failed to connect to Pulse as %s: %s", self.user, e)
                    raise ConnectError(f"Failed to connect to Pulse as {self.user}: {e}") from e
                logger.info("Connected to Pulse as %s", self.user)
        return self.handle

    def close(self):
        with self.lock:
            if self.handle is None:
                return
            handle, self.handle = self.handle, None
            self.transport.close(handle)

    def consume(
        self,
        queue_name: str,
        callback: Callable[[Delivery], None],
        *bindings: Binding,
        prefetch: int = 0,
        max_length: int = 0,
        auto_ack: bool = False,
    ):
        return consume(
            self,
            queue_name,
            callback,
            *bindings,
            prefetch=prefetch,
            max_length=max_length,
            auto_ack=auto_ack,
        )

    def __repr__(self):
        return f"<Connection user={self.user!r} connected={self.connected}>"


def new_connection(
    user: str = "",
    password: str = "",
    url: str = "",
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[Transport] = None,
) -> Connection:
    credentials = resolve(user, password, url, environ=environ)
    return Connection(credentials, transport or PikaTransport())
