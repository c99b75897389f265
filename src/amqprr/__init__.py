""" Synchronous request/response on top of a topic-based publish/subscribe
    message bus. A :class:`Client` publishes a request and blocks until the
    correlated response arrives; a :class:`Server` receives requests as
    discrete events and answers each one individually.

    Neither recovers from a lost connection: once the underlying channel
    shuts down the objects built on it must be discarded and recreated.
"""

# Utility components.

from . import config
from . import errors
from .errors import (
    AmqprrError,
    ChannelClosed,
    RequestTimeout,
    SetupError,
    TransportError,
    UnusableError,
)

# Transport interface, and the RabbitMQ implementation of it.

from . import channel
from .channel import Properties, TopicChannel
from . import rabbitmq
connect = rabbitmq.connect

# Primary public-facing interfaces.

from .subscription import Subscription
from .client import Client
from .server import RequestEvent, Server

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
