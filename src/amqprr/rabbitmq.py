"""RabbitMQ topic channel, backed by pika."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Dict, Optional

import pika
import pika.exceptions

from . import config
from .channel import Properties, TopicChannel
from .errors import ChannelClosed, TransportError

logger = logging.getLogger(__name__)


class _Consumer:

    __slots__ = ('on_delivery', 'on_cancel', 'on_shutdown')

    def __init__(self, on_delivery, on_cancel, on_shutdown):
        self.on_delivery = on_delivery
        self.on_cancel = on_cancel
        self.on_shutdown = on_shutdown


class Channel(TopicChannel):
    """ A :class:`amqprr.channel.TopicChannel` on a dedicated
        :class:`pika.BlockingConnection`.

        pika connections are not thread-safe. The connection's I/O loop runs
        on a background thread owned by this object; operations requested
        from any other thread are handed to it with
        ``add_callback_threadsafe`` and the caller waits for the outcome.
        Operations requested from the I/O thread itself, such as a
        publish from inside a delivery callback, run immediately.

        If the connection or channel is lost, every registered consumer
        receives a shutdown notice and the channel cannot be used again.
    """

    def __init__(self, parameters: Optional[pika.ConnectionParameters] = None):

        if parameters is None:
            parameters = config.parameters()

        try:
            self._connection = pika.BlockingConnection(parameters)
        except pika.exceptions.AMQPError as e:
            raise TransportError('failed to connect to AMQP broker: ' + str(e)) from e

        try:
            self._channel = self._connection.channel()
        except pika.exceptions.AMQPError as e:
            try:
                self._connection.close()
            except pika.exceptions.AMQPError:
                logger.debug('failed to close connection', exc_info=True)
            raise TransportError('failed to open AMQP channel: ' + str(e)) from e

        # Only touched from the I/O thread.
        self._consumers: Dict[str, _Consumer] = {}

        self._lock = threading.Lock()
        self._pending: set = set()
        self._closing = False
        self._closed: Optional[str] = None

        self._channel.add_on_cancel_callback(self._on_cancel)

        self._thread = threading.Thread(target=self._run, name='amqprr-io')
        self._thread.daemon = True
        self._thread.start()


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()


    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._closed is None


    def declare_exchange(self, name, durable=True, auto_delete=False):
        self._call(self._channel.exchange_declare, exchange=name,
                   exchange_type='topic', durable=durable, auto_delete=auto_delete)


    def declare_queue(self, name='', durable=True, exclusive=False, auto_delete=True):
        result = self._call(self._channel.queue_declare, queue=name,
                            durable=durable, exclusive=exclusive, auto_delete=auto_delete)
        return result.method.queue


    def bind_queue(self, queue, exchange, topic):
        self._call(self._channel.queue_bind, queue=queue, exchange=exchange, routing_key=topic)


    def consume(self, queue, on_delivery, on_cancel, on_shutdown, auto_ack=True):
        consumer = _Consumer(on_delivery, on_cancel, on_shutdown)
        return self._call(self._consume, queue, consumer, auto_ack)


    def cancel(self, consumer_tag):
        self._call(self._cancel, consumer_tag)


    def publish(self, exchange, topic, properties, body):
        pika_properties = pika.BasicProperties(
            reply_to=properties.reply_to,
            correlation_id=properties.correlation_id,
        )

        self._call(self._channel.basic_publish, exchange=exchange,
                   routing_key=topic, body=body, properties=pika_properties)


    def close(self):
        """ Shut down the I/O loop and close the connection. Consumers are
            notified before the connection goes away. Calling :func:`close`
            more than once is harmless.
        """

        with self._lock:
            if self._closing:
                return
            self._closing = True

        if threading.current_thread() is self._thread:
            # The loop notices the flag once the current callback returns.
            return

        try:
            self._connection.add_callback_threadsafe(_wake)
        except pika.exceptions.AMQPError:
            # The connection is already gone; the I/O loop has exited or is
            # about to.
            logger.debug('connection already closed', exc_info=True)

        self._thread.join()


    def _call(self, function, *args, **kwargs):
        """ Run *function* on the I/O thread and return its result, raising
            whatever it raised.
        """

        if threading.current_thread() is self._thread:
            return _invoke(function, args, kwargs)

        future = concurrent.futures.Future()

        def callback():
            if future.done():
                return
            try:
                result = _invoke(function, args, kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        with self._lock:
            if self._closed is not None:
                raise ChannelClosed(self._closed)
            self._pending.add(future)

        try:
            try:
                self._connection.add_callback_threadsafe(callback)
            except pika.exceptions.AMQPError as e:
                raise ChannelClosed(str(e) or 'connection closed') from e

            return future.result()
        finally:
            with self._lock:
                self._pending.discard(future)


    def _consume(self, queue, consumer, auto_ack):

        consumer_tag = self._channel.basic_consume(queue, self._on_message, auto_ack=auto_ack)
        self._consumers[consumer_tag] = consumer
        logger.debug('consumer %s started on %s', consumer_tag, queue)
        return consumer_tag


    def _cancel(self, consumer_tag):

        self._consumers.pop(consumer_tag, None)
        self._channel.basic_cancel(consumer_tag)
        logger.debug('consumer %s cancelled', consumer_tag)


    def _on_message(self, _channel, method, properties, body):

        consumer_tag = method.consumer_tag
        consumer = self._consumers.get(consumer_tag)

        if consumer is None:
            return

        properties = Properties(properties.reply_to, properties.correlation_id)

        try:
            consumer.on_delivery(consumer_tag, properties, body)
        except Exception:
            logger.exception('delivery callback for consumer %s failed', consumer_tag)


    def _on_cancel(self, method_frame):

        consumer_tag = method_frame.method.consumer_tag
        consumer = self._consumers.pop(consumer_tag, None)

        if consumer is None:
            return

        logger.debug('consumer %s cancelled by the broker', consumer_tag)

        try:
            consumer.on_cancel(consumer_tag)
        except Exception:
            logger.exception('cancel callback for consumer %s failed', consumer_tag)


    def _run(self):

        reason = 'channel closed by caller'

        try:
            while self._closing == False:
                self._connection.process_data_events(time_limit=1)

                if self._channel.is_closed:
                    reason = 'channel closed by the broker'
                    break

        except pika.exceptions.AMQPError as e:
            reason = str(e) or e.__class__.__name__
            logger.error('AMQP connection lost: %s', reason)
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            logger.exception('unexpected failure in the AMQP I/O loop')

        self._shutdown(reason)

        if self._connection.is_open:
            try:
                self._connection.close()
            except pika.exceptions.AMQPError:
                logger.debug('failed to close connection', exc_info=True)


    def _shutdown(self, reason):

        with self._lock:
            self._closed = reason
            pending = list(self._pending)
            self._pending.clear()

        for future in pending:
            if future.done():
                continue
            future.set_exception(ChannelClosed(reason))

        consumers = list(self._consumers.items())
        self._consumers.clear()

        for consumer_tag, consumer in consumers:
            try:
                consumer.on_shutdown(consumer_tag, reason)
            except Exception:
                logger.exception('shutdown callback for consumer %s failed', consumer_tag)


# end of class Channel



def connect(url=None):
    """ Open a :class:`Channel` to the broker described by *url*, or by the
        ``AMQPRR_*`` environment variables if no *url* is provided.
    """

    return Channel(config.parameters(url))



def _invoke(function, args, kwargs):

    try:
        return function(*args, **kwargs)
    except (pika.exceptions.AMQPConnectionError,
            pika.exceptions.ChannelClosed,
            pika.exceptions.ChannelWrongStateError) as e:
        raise ChannelClosed(str(e) or e.__class__.__name__) from e
    except pika.exceptions.AMQPError as e:
        raise TransportError(str(e) or e.__class__.__name__) from e



def _wake():
    pass


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
