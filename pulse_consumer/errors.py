class PulseError(Exception):
    """Base class for every broker setup failure."""


class ConnectError(PulseError):
    pass


class ChannelError(PulseError):
    pass


class ExchangeDeclareError(PulseError):
    pass


class QueueDeclareError(PulseError):
    pass


class QueueBindError(PulseError):
    pass


class ConsumeError(PulseError):
    pass
