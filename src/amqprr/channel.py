"""Topic channel interface.

This is the (small) contract that a pub/sub transport must satisfy for the
request/response machinery to run on top of it. It lives apart from any
concrete broker binding so that :mod:`amqprr.subscription`,
:mod:`amqprr.client` and :mod:`amqprr.server` remain transport-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional


class Properties:
    """ Metadata attached to a published message. *correlation_id* ties a
        response to the request that caused it; *reply_to* names the topic
        a response should be published to, and is only set on requests.
    """

    __slots__ = ('reply_to', 'correlation_id')

    def __init__(self, reply_to: Optional[str] = None,
                 correlation_id: Optional[str] = None):
        self.reply_to = reply_to
        self.correlation_id = correlation_id


    def __eq__(self, other):
        if not isinstance(other, Properties):
            return NotImplemented
        return (self.reply_to, self.correlation_id) == \
               (other.reply_to, other.correlation_id)


    def __repr__(self):
        return 'Properties(reply_to=%r, correlation_id=%r)' % (
            self.reply_to, self.correlation_id)


DeliveryCallback = Callable[[str, Properties, bytes], None]
CancelCallback = Callable[[str], None]
ShutdownCallback = Callable[[str, str], None]


class TopicChannel(ABC):
    """ Minimal contract for a topic-exchange pub/sub channel.

        Implementations invoke the consumer callbacks from their own
        delivery thread. :func:`publish` and :func:`cancel` may be called
        from any thread, including from within a delivery callback.
    """

    @abstractmethod
    def declare_exchange(self, name: str, durable: bool = True,
                         auto_delete: bool = False) -> None:
        """Declare a topic exchange."""

    @abstractmethod
    def declare_queue(self, name: str = '', durable: bool = True,
                      exclusive: bool = False,
                      auto_delete: bool = True) -> str:
        """ Declare a queue and return its name. An empty *name* asks the
            broker to generate one.
        """

    @abstractmethod
    def bind_queue(self, queue: str, exchange: str, topic: str) -> None:
        """Route messages published to *topic* on *exchange* to *queue*."""

    @abstractmethod
    def consume(self, queue: str, on_delivery: DeliveryCallback,
                on_cancel: CancelCallback, on_shutdown: ShutdownCallback,
                auto_ack: bool = True) -> str:
        """ Start a push consumer on *queue* and return its consumer tag.
            Every callback receives that consumer tag as its first argument.
        """

    @abstractmethod
    def cancel(self, consumer_tag: str) -> None:
        """Stop the consumer identified by *consumer_tag*."""

    @abstractmethod
    def publish(self, exchange: str, topic: str, properties: Properties,
                body: bytes) -> None:
        """Publish *body* to *topic* on *exchange*."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the channel. Consumers receive a shutdown notice."""


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
