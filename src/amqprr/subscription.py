""" A :class:`Subscription` owns one consumer bound to one queue, and keeps
    track of whether that consumer is still usable. Both the request/response
    :class:`amqprr.Client` and :class:`amqprr.Server` are built on top of one.
"""

import logging
import threading

from .errors import SetupError, UnusableError

logger = logging.getLogger(__name__)


class Subscription:
    """ Declare the *exchange* as a durable topic exchange, declare an
        anonymous queue, bind it to *topic*, and start consuming from it on
        the supplied *channel*, which must implement
        :class:`amqprr.channel.TopicChannel`. If *topic* is not specified one
        is generated from the broker-assigned queue name.

        Every message delivered to the queue is passed to *handler*, which
        is invoked as ``handler(properties, body)`` on the channel's delivery
        thread.

        A :class:`Subscription` never recovers: once the consumer is
        cancelled, the channel shuts down, or :func:`close` is called, the
        instance is permanently inactive and a new one must be created.
        Any failure during construction is raised as a
        :class:`amqprr.errors.SetupError` after releasing whatever was
        acquired along the way.
    """

    def __init__(self, channel, exchange, handler, topic=None):

        if callable(handler):
            pass
        else:
            raise TypeError('the delivery handler must be callable')

        self.channel = channel
        self.exchange = exchange
        self.handler = handler
        self.queue = None
        self.topic = topic

        self._lock = threading.Lock()
        self._consumer_tag = None
        self._reason = 'no consumer created successfully'

        try:
            self._setup(topic)
        except Exception as e:
            self.close()
            raise SetupError('failed to set up consumer: ' + str(e)) from e


    def _setup(self, topic):

        # Request/response could get by with a direct exchange, but a topic
        # exchange allows sharing one that is already used for ordinary
        # publish/subscribe traffic.

        self.channel.declare_exchange(self.exchange, durable=True, auto_delete=False)

        # The queue name is generated by the broker. It is durable, but goes
        # away once nobody is consuming from it.

        self.queue = self.channel.declare_queue('', durable=True, exclusive=False, auto_delete=True)

        if topic is None:
            topic = 'topic-' + self.queue

        self.topic = topic
        self.channel.bind_queue(self.queue, self.exchange, topic)

        # The lock is held while the consumer is registered so that a
        # delivery arriving on the channel thread before consume() returns
        # waits until the consumer tag is known.

        with self._lock:
            self._consumer_tag = self.channel.consume(self.queue,
                        self._on_delivery, self._on_cancel, self._on_shutdown,
                        auto_ack=True)

        logger.debug('consuming from %s as %s on topic %s', self.queue, self._consumer_tag, topic)


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()


    def __repr__(self):
        return 'Subscription(exchange=%r, topic=%r, active=%r)' % (
            self.exchange, self.topic, self.active)


    @property
    def active(self):
        """ True if the consumer is still registered and usable.
        """

        with self._lock:
            return bool(self._consumer_tag)


    @property
    def reason(self):
        """ Why this subscription is inactive; not meaningful while it is
            still :attr:`active`.
        """

        with self._lock:
            return self._reason


    def require_active(self):
        """ Raise :class:`amqprr.errors.UnusableError` if this subscription
            is no longer active. The exception carries the reason recorded
            when the subscription became inactive.
        """

        with self._lock:
            if self._consumer_tag:
                return
            reason = self._reason

        raise UnusableError(reason)


    def close(self):
        """ Cancel the consumer and mark this subscription inactive. Calling
            :func:`close` more than once is harmless, and it never raises;
            a failure to cancel is ignored, the subscription is unusable
            afterwards regardless.
        """

        with self._lock:
            consumer_tag = self._consumer_tag

        if consumer_tag:
            pass
        else:
            return

        try:
            self.channel.cancel(consumer_tag)
        except Exception:
            logger.debug('failed to cancel consumer %s', consumer_tag, exc_info=True)

        self._deactivate('closed by caller')


    def _deactivate(self, reason):

        with self._lock:
            self._consumer_tag = None
            self._reason = reason

        logger.info('subscription on topic %s inactive: %s', self.topic, reason)


    def _matches(self, consumer_tag):

        with self._lock:
            return self._consumer_tag is not None and self._consumer_tag == consumer_tag


    def _on_delivery(self, consumer_tag, properties, body):

        if self._matches(consumer_tag):
            pass
        else:
            logger.debug('ignoring delivery for unexpected consumer %s', consumer_tag)
            return

        self.handler(properties, body)


    def _on_cancel(self, consumer_tag):

        if self._matches(consumer_tag):
            self._deactivate('consumer cancelled by the broker')


    def _on_shutdown(self, consumer_tag, reason=None):

        if self._matches(consumer_tag):
            pass
        else:
            return

        if reason:
            self._deactivate('transport shut down: ' + str(reason))
        else:
            self._deactivate('transport shut down')


# end of class Subscription


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
