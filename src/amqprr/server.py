""" Server side of the request/response pattern. A :class:`Server` consumes
    requests from a well-known topic and hands each one to the registered
    listeners as a :class:`RequestEvent`; a listener answers by calling
    :func:`Server.respond`.
"""

import logging
import threading

from .channel import Properties
from .errors import TransportError
from .subscription import Subscription

logger = logging.getLogger(__name__)


class RequestEvent:
    """ One inbound request. *reply_to* is the topic the response should be
        published to, *correlation_id* must be echoed back in the response,
        and *body* is the raw request payload.

        A listener may hold on to the event after it returns and respond
        later; :func:`Server.respond` only needs these three attributes.
    """

    __slots__ = ('reply_to', 'correlation_id', 'body')

    def __init__(self, reply_to, correlation_id, body):
        self.reply_to = reply_to
        self.correlation_id = correlation_id
        self.body = body


    def __repr__(self):
        return 'RequestEvent(reply_to=%r, correlation_id=%r, body=%r)' % (
            self.reply_to, self.correlation_id, self.body)


# end of class RequestEvent



class Server:
    """ Receive requests published to *topic* on *exchange*, via the
        supplied *channel*.

        Listeners are invoked on the channel's delivery thread, one after
        another; a slow listener holds up the next request. Listeners with
        real work to do should hand the event off to their own thread and
        call :func:`respond` from there.

        There is no recovery from a lost connection or a cancelled consumer;
        every subsequent call raises :class:`amqprr.errors.UnusableError`,
        and the instance must be discarded.
    """

    def __init__(self, channel, exchange, topic):

        self.channel = channel
        self.exchange = exchange

        self._lock = threading.Lock()
        self._listeners = dict()

        self.subscription = Subscription(channel, exchange, self._on_request, topic)


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()


    @property
    def topic(self):
        return self.subscription.topic


    def close(self):
        """ Stop receiving requests. The server cannot be used afterwards.
        """

        self.subscription.close()


    def add_listener(self, listener):
        """ Register *listener* to be called as ``listener(server, event)``
            for every inbound request. Registering the same listener twice
            has no additional effect; listeners are told apart by identity,
            so two distinct objects that compare equal are both kept.
        """

        self.subscription.require_active()

        if callable(listener):
            pass
        else:
            raise TypeError('the listener must be callable')

        with self._lock:
            self._listeners[_listener_key(listener)] = listener


    def remove_listener(self, listener):
        """ Stop calling *listener*. Removing a listener that was never
            registered is not an error.
        """

        self.subscription.require_active()

        with self._lock:
            self._listeners.pop(_listener_key(listener), None)


    def respond(self, event, body):
        """ Publish *body* as the response to the request described by
            *event*, a :class:`RequestEvent`.
        """

        self.subscription.require_active()

        # Responses are terminal; nothing replies to a reply, so there is no
        # reply_to on the outbound message.

        properties = Properties(correlation_id=event.correlation_id)

        try:
            self.channel.publish(self.exchange, event.reply_to, properties, body)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError('failed to publish response: ' + str(e)) from e


    def _on_request(self, properties, body):

        event = RequestEvent(properties.reply_to, properties.correlation_id, body)

        # Iterate over a copy; the lock is not held while listeners run, so
        # registration from another thread is never blocked by a listener.

        with self._lock:
            listeners = list(self._listeners.values())

        for listener in listeners:
            try:
                listener(self, event)
            except Exception:
                logger.exception('request listener %r failed', listener)
                continue


# end of class Server



def _listener_key(listener):
    """ Listeners are distinguished by identity, not equality. A bound method
        is a new object every time it is looked up, so it is keyed on the
        instance and function it binds together.
    """

    try:
        return (id(listener.__self__), id(listener.__func__))
    except AttributeError:
        return id(listener)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
