""" Client side of the request/response pattern. A :class:`Client` publishes
    a request to a well-known topic and blocks until the correlated response
    arrives on its own private reply topic.
"""

import logging
import queue
import threading
import uuid

from .errors import RequestTimeout, TransportError
from .channel import Properties
from .subscription import Subscription

logger = logging.getLogger(__name__)


class Client:
    """ Issue requests to *target*, a topic on *exchange*, over the supplied
        *channel*. Responses arrive on a private queue bound to a generated
        topic; that topic is attached to every request as the reply-to
        address.

        A :class:`Client` handles one outstanding request at a time. It does
        not queue concurrent calls: if :func:`request` is invoked from a
        second thread while the first is still waiting, the most recent call
        takes over the correlation slot and the first will time out. Create
        one :class:`Client` per concurrent caller instead.

        There is no recovery from a lost connection or a cancelled consumer;
        every subsequent call raises :class:`amqprr.errors.UnusableError`,
        and the instance must be discarded.
    """

    def __init__(self, channel, exchange, target):

        self.channel = channel
        self.exchange = exchange
        self.target = target

        # The correlation ID ties an inbound response to the request that is
        # currently awaiting it. An empty string means nothing is pending.

        self._lock = threading.Lock()
        self._correlation_id = ''
        self._responses = queue.Queue(maxsize=1)

        self.subscription = Subscription(channel, exchange, self._on_response)


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()


    @property
    def reply_to(self):
        """ The topic that responses to this client are published to.
        """

        return self.subscription.topic


    def close(self):
        """ Stop receiving responses. The client cannot be used afterwards.
        """

        self.subscription.close()


    def request(self, body, timeout):
        """ Publish *body* as a request and wait up to *timeout* seconds for
            the response, which is returned as raw bytes.

            :class:`amqprr.errors.RequestTimeout` is raised if no correlated
            response arrives in time, :class:`amqprr.errors.TransportError`
            if the request could not be published, and
            :class:`amqprr.errors.UnusableError` if the client's subscription
            is no longer active.
            A negative *timeout* is rejected with :class:`ValueError` before
            anything is published.
        """

        self.subscription.require_active()

        if timeout < 0:
            raise ValueError('timeout must be non-negative, not %r' % (timeout,))

        correlation_id = str(uuid.uuid4())

        with self._lock:
            self._correlation_id = correlation_id
            self._drain()

        try:
            properties = Properties(reply_to=self.reply_to, correlation_id=correlation_id)

            try:
                self.channel.publish(self.exchange, self.target, properties, body)
            except TransportError:
                raise
            except Exception as e:
                raise TransportError('failed to publish request: ' + str(e)) from e

            try:
                response = self._responses.get(timeout=timeout)
            except queue.Empty:
                raise RequestTimeout('no response to %s in %.2f sec' % (self.target, timeout)) from None

            return response

        finally:
            # A response may have been matched in the instant before this
            # point; the slot is emptied along with the correlation ID so it
            # can never satisfy a later request.

            with self._lock:
                self._correlation_id = ''
                self._drain()


    def _drain(self):

        try:
            self._responses.get_nowait()
        except queue.Empty:
            pass


    def _on_response(self, properties, body):

        correlation_id = properties.correlation_id

        with self._lock:
            if correlation_id and correlation_id == self._correlation_id:
                pass
            else:
                logger.debug('discarding response with correlation ID %r', correlation_id)
                return

            # Only the first response for a given request is accepted.

            try:
                self._responses.put_nowait(body)
            except queue.Full:
                logger.debug('discarding duplicate response for %s', correlation_id)


# end of class Client


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
