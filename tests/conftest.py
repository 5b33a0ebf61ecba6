import pytest

from pulse_consumer.transport import Transport


class FakeTransport(Transport):
    """Records every broker call; ``fail`` maps a method name to the exception it raises."""

    def __init__(self, deliveries=None, fail=None):
        self.deliveries = list(deliveries or [])
        self.fail = fail or {}
        self.calls = []
        self.dials = 0
        self.channels = 0

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if name in self.fail:
            raise self.fail[name]

    def names(self):
        return [c[0] for c in self.calls]

    def dial(self, url):
        self._record("dial", url)
        self.dials += 1
        return object()

    def open_channel(self, connection):
        self._record("open_channel")
        self.channels += 1
        return f"channel-{self.channels}"

    def declare_exchange_passive(self, channel, name):
        self._record("declare_exchange_passive", channel, name)

    def declare_queue(self, channel, name, durable, auto_delete, exclusive, arguments=None):
        self._record(
            "declare_queue", channel, name,
            durable=durable, auto_delete=auto_delete, exclusive=exclusive, arguments=arguments,
        )
        return name

    def bind_queue(self, channel, queue, routing_key, exchange):
        self._record("bind_queue", channel, queue, routing_key, exchange)

    def qos(self, channel, prefetch):
        self._record("qos", channel, prefetch)

    def consume(self, channel, queue, auto_ack):
        self._record("consume", channel, queue, auto_ack)
        return iter(self.deliveries)

    def ack(self, channel, delivery_tag):
        self._record("ack", channel, delivery_tag)

    def nack(self, channel, delivery_tag, requeue=True):
        self._record("nack", channel, delivery_tag, requeue=requeue)

    def close_channel(self, channel):
        self._record("close_channel", channel)

    def close(self, connection):
        self._record("close")


@pytest.fixture
def transport():
    return FakeTransport()
