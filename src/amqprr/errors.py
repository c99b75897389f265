""" Exceptions raised by amqprr. Everything raised on purpose by this
    package derives from :class:`AmqprrError`.
"""


class AmqprrError(Exception):
    """Base class for all amqprr errors."""


class SetupError(AmqprrError):
    """ The exchange, queue, binding, or consumer backing a subscription
        could not be established. The object being constructed is unusable
        and should be discarded.
    """


class UnusableError(AmqprrError):
    """ An operation was attempted on an object whose subscription is no
        longer active. The *reason* attribute records why it went inactive.
    """

    def __init__(self, reason):
        self.reason = reason
        AmqprrError.__init__(self, 'the object is unusable: ' + str(reason))


class TransportError(AmqprrError):
    """The underlying channel could not carry out an operation."""


class ChannelClosed(TransportError):
    """The underlying channel has shut down and cannot be used again."""


class RequestTimeout(TransportError, TimeoutError):
    """A request did not receive a correlated response in time."""


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
