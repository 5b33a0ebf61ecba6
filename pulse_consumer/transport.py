"""
Broker transport used by the consume pipeline.

`Transport` is the small set of broker operations the pipeline needs;
`PikaTransport` implements them over a blocking pika connection.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional

import pika
from pika.exceptions import AMQPError

from .config import HEARTBEAT_SEC, POLL_SEC

logger = logging.getLogger(__name__)


def _noop(*args, **kwargs):
    pass


@dataclass
class Delivery:
    body: bytes
    routing_key: str = ""
    exchange: str = ""
    delivery_tag: int = 0
    redelivered: bool = False
    properties: Any = None
    # bound by the consume pipeline when the subscription needs explicit acks
    ack: Callable[[], None] = field(default=_noop, repr=False, compare=False)
    nack: Callable[..., None] = field(default=_noop, repr=False, compare=False)


class Transport(ABC):
    @abstractmethod
    def dial(self, url: str) -> Any:
        pass

    @abstractmethod
    def open_channel(self, connection) -> Any:
        pass

    @abstractmethod
    def declare_exchange_passive(self, channel, name: str) -> None:
        """Verify a topic exchange exists without creating it."""

    @abstractmethod
    def declare_queue(
        self,
        channel,
        name: str,
        durable: bool,
        auto_delete: bool,
        exclusive: bool,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Declare a queue and return the name the broker confirmed."""

    @abstractmethod
    def bind_queue(self, channel, queue: str, routing_key: str, exchange: str) -> None:
        pass

    @abstractmethod
    def qos(self, channel, prefetch: int) -> None:
        pass

    @abstractmethod
    def consume(self, channel, queue: str, auto_ack: bool) -> Iterator[Optional[Delivery]]:
        """
        Register a consumer on ``queue`` and return its deliveries.

        Registration happens before this returns. The iterator yields
        ``None`` when a poll finds nothing and stops once the channel or
        connection is gone.
        """

    @abstractmethod
    def ack(self, channel, delivery_tag: int) -> None:
        pass

    @abstractmethod
    def nack(self, channel, delivery_tag: int, requeue: bool = True) -> None:
        pass

    @abstractmethod
    def close_channel(self, channel) -> None:
        pass

    @abstractmethod
    def close(self, connection) -> None:
        pass


class PikaTransport(Transport):
    def __init__(self, heartbeat: int = HEARTBEAT_SEC, poll_sec: float = POLL_SEC):
        self.heartbeat = heartbeat
        self.poll_sec = poll_sec

    def dial(self, url: str) -> pika.BlockingConnection:
        params = pika.URLParameters(url)
        params.heartbeat = self.heartbeat
        return pika.BlockingConnection(params)

    def open_channel(self, connection):
        return connection.channel()

    def declare_exchange_passive(self, channel, name: str) -> None:
        channel.exchange_declare(
            exchange=name,
            exchange_type="topic",
            passive=True,
            durable=False,
            auto_delete=False,
            internal=False,
        )

    def declare_queue(self, channel, name, durable, auto_delete, exclusive, arguments=None) -> str:
        result = channel.queue_declare(
            queue=name,
            durable=durable,
            auto_delete=auto_delete,
            exclusive=exclusive,
            arguments=arguments,
        )
        return result.method.queue

    def bind_queue(self, channel, queue: str, routing_key: str, exchange: str) -> None:
        channel.queue_bind(queue=queue, exchange=exchange, routing_key=routing_key)

    def qos(self, channel, prefetch: int) -> None:
        channel.basic_qos(prefetch_count=prefetch)

    def consume(self, channel, queue: str, auto_ack: bool) -> Iterator[Optional[Delivery]]:
        pending = deque()

        def _on_message(ch_, method, props, body):
            pending.append(Delivery(
                body=body,
                routing_key=method.routing_key,
                exchange=method.exchange,
                delivery_tag=method.delivery_tag,
                redelivered=method.redelivered,
                properties=props,
            ))

        cancelled = threading.Event()

        def _on_cancel(method_frame):
            logger.warning("Broker cancelled the consumer on %s", queue)
            cancelled.set()

        channel.add_on_cancel_callback(_on_cancel)
        channel.basic_consume(queue=queue, on_message_callback=_on_message, auto_ack=auto_ack)
        return self._drain(channel, pending, cancelled)

    def _drain(self, channel, pending, cancelled) -> Iterator[Optional[Delivery]]:
        # process_data_events dispatches for every channel on the connection,
        # so messages for other consumers land in their own deques.
        while True:
            if pending:
                yield pending.popleft()
                continue
            if cancelled.is_set() or not channel.is_open:
                return
            try:
                channel.connection.process_data_events(time_limit=self.poll_sec)
            except AMQPError as e:
                logger.warning("Delivery stream on channel %s stopped: %r", channel.channel_number, e)
                return
            if not pending:
                yield None

    def ack(self, channel, delivery_tag: int) -> None:
        channel.basic_ack(delivery_tag=delivery_tag)

    def nack(self, channel, delivery_tag: int, requeue: bool = True) -> None:
        channel.basic_nack(delivery_tag=delivery_tag, requeue=requeue)

    def close_channel(self, channel) -> None:
        if channel.is_open:
            channel.close()

    def close(self, connection) -> None:
        if connection.is_open:
            connection.close()
