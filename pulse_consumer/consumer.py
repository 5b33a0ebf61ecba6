"""
Consume pipeline: declare, bind and subscribe, then hand each delivery to a
callback on its own thread.

Setup runs under the connection lock and is all-or-nothing: if any step
fails the channel is closed and the matching `PulseError` is raised to the
caller.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from functools import partial
from typing import Callable, Iterable, List

from .binding import Binding
from .errors import (
    ChannelError,
    ConsumeError,
    ExchangeDeclareError,
    PulseError,
    QueueBindError,
    QueueDeclareError,
)
from .transport import Delivery

logger = logging.getLogger(__name__)

_END = object()


def queue_name_for(user: str, queue_name: str = "") -> str:
    """Broker-side queue name; an empty ``queue_name`` gets a fresh uuid."""
    return f"queue/{user}/{queue_name or uuid.uuid4()}"


def distinct_exchanges(bindings: Iterable[Binding]) -> List[str]:
    return list(dict.fromkeys(b.exchange_name for b in bindings))


class ConsumeSession:
    """
    Handle for one subscription.

    pause/resume/delete/close are accepted but do nothing yet: the queue and
    its delivery thread live until the connection drops or the process exits.
    """

    def __init__(self, connection, channel, queue: str, auto_ack: bool):
        self.connection = connection
        self.channel = channel
        self.queue = queue
        self.auto_ack = auto_ack
        self.thread = None

    def pause(self):
        logger.debug("pause() is a no-op for %s", self.queue)

    def resume(self):
        logger.debug("resume() is a no-op for %s", self.queue)

    def delete(self):
        logger.debug("delete() is a no-op for %s", self.queue)

    def close(self):
        logger.debug("close() is a no-op for %s", self.queue)

    def join(self, timeout=None) -> bool:
        """Wait for the delivery loop to end; True if it has."""
        if self.thread is None:
            return True
        self.thread.join(timeout)
        return not self.thread.is_alive()

    def _ack(self, delivery_tag: int):
        with self.connection.lock:
            self.connection.transport.ack(self.channel, delivery_tag)

    def _nack(self, delivery_tag: int, requeue: bool = True):
        with self.connection.lock:
            self.connection.transport.nack(self.channel, delivery_tag, requeue=requeue)

    def _start(self, deliveries, callback):
        self.thread = threading.Thread(
            target=self._run,
            args=(deliveries, callback),
            name=f"pulse-consumer:{self.queue}",
            daemon=True,
        )
        self.thread.start()

    def _run(self, deliveries, callback: Callable[[Delivery], None]):
        while True:
            try:
                with self.connection.lock:
                    delivery = next(deliveries, _END)
            except Exception:
                logger.exception("Delivery stream for %s failed", self.queue)
                break
            if delivery is _END:
                break
            if delivery is None:
                continue
            if not self.auto_ack:
                delivery.ack = partial(self._ack, delivery.delivery_tag)
                delivery.nack = partial(self._nack, delivery.delivery_tag)
            try:
                callback(delivery)
            except Exception:
                logger.exception("Callback failed for delivery %s from %s", delivery.delivery_tag, self.queue)
        logger.warning("Delivery loop for %s has exited", self.queue)

    def __repr__(self):
        return f"<ConsumeSession queue={self.queue!r}>"


@contextmanager
def _step(error_cls, message: str):
    try:
        yield
    except PulseError:
        raise
    except Exception as e:
        logger.error("%s: %s", message, e)
        raise error_cls(f"{message}: {e}") from e


def _close_channel(transport, channel):
    try:
        transport.close_channel(channel)
    except Exception as e:
        logger.debug("Ignoring error while closing channel after failed setup: %r", e)


def _subscribe(transport, channel, user, queue_name, bindings, prefetch, max_length, auto_ack):
    for exchange in distinct_exchanges(bindings):
        with _step(ExchangeDeclareError, f"Failed to passively declare exchange {exchange}"):
            transport.declare_exchange_passive(channel, exchange)

    name = queue_name_for(user, queue_name)
    arguments = {"x-max-length": max_length} if max_length > 0 else None
    with _step(QueueDeclareError, f"Failed to declare queue {name}"):
        if queue_name:
            queue = transport.declare_queue(
                channel, name, durable=False, auto_delete=False, exclusive=False, arguments=arguments
            )
        else:
            # unnamed queues are exclusive and go away on disconnect
            queue = transport.declare_queue(
                channel, name, durable=False, auto_delete=True, exclusive=True, arguments=arguments
            )
    logger.info("Declared queue %s", queue)

    for b in bindings:
        logger.info("Binding %s to %s with routing key %s", queue, b.exchange_name, b.routing_key)
        with _step(QueueBindError, f"Failed to bind {queue} to {b.exchange_name} with routing key {b.routing_key}"):
            transport.bind_queue(channel, queue, b.routing_key, b.exchange_name)

    with _step(ConsumeError, f"Failed to register a consumer on {queue}"):
        if prefetch > 0:
            transport.qos(channel, prefetch)
        deliveries = transport.consume(channel, queue, auto_ack)
    return queue, deliveries


def consume(
    connection,
    queue_name: str,
    callback: Callable[[Delivery], None],
    *bindings: Binding,
    prefetch: int = 0,
    max_length: int = 0,
    auto_ack: bool = False,
) -> ConsumeSession:
    """
    Subscribe ``callback`` to messages matching ``bindings``.

    An empty ``queue_name`` declares an exclusive, auto-deleting queue named
    ``queue/<user>/<uuid>``; otherwise ``queue/<user>/<queue_name>`` is
    declared shared and kept across disconnects. Exchanges must already
    exist on the broker. With ``auto_ack=False`` the callback settles each
    message through ``delivery.ack()`` or ``delivery.nack()``.

    Returns once the consumer is registered; deliveries are handled on a
    daemon thread in arrival order.
    """
    handle = connection.connect()
    transport = connection.transport

    with connection.lock:
        with _step(ChannelError, "Failed to open a channel"):
            channel = transport.open_channel(handle)
        try:
            queue, deliveries = _subscribe(
                transport, channel, connection.user, queue_name, bindings, prefetch, max_length, auto_ack
            )
        except PulseError:
            _close_channel(transport, channel)
            raise

    session = ConsumeSession(connection, channel, queue, auto_ack)
    session._start(deliveries, callback)
    return session
