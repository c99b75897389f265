import itertools
import queue
import threading
import traceback

import pytest

import amqprr


EXCHANGE = 'unittest.exchange'


class FakeBroker:
    """ In-memory stand-in for a RabbitMQ broker. Messages are routed by
        exact topic match from an exchange to the bound queues, and handed to
        one consumer per queue.
    """

    def __init__(self):

        self.lock = threading.Lock()
        self.exchanges = dict()
        self.queues = dict()
        self.bindings = list()
        self.consumers = dict()
        self.published = list()
        self.channels = list()
        self._counter = itertools.count(1)


    def channel(self):
        channel = FakeChannel(self)
        self.channels.append(channel)
        return channel


    def generate(self, prefix):
        return prefix + str(next(self._counter))


    def route(self, exchange, topic, properties, body):

        targets = list()

        with self.lock:
            self.published.append((exchange, topic, properties, body))

            for bound_exchange, bound_topic, bound_queue in self.bindings:
                if bound_exchange != exchange or bound_topic != topic:
                    continue

                for consumer_tag, (consumer_queue, channel) in self.consumers.items():
                    if consumer_queue == bound_queue:
                        targets.append((consumer_tag, channel))
                        break

        for consumer_tag, channel in targets:
            channel.schedule(channel.deliver, consumer_tag, properties, body)


    def remove_consumer(self, consumer_tag):

        with self.lock:
            try:
                queue_name, channel = self.consumers.pop(consumer_tag)
            except KeyError:
                return

            remaining = [entry for entry in self.consumers.values() if entry[0] == queue_name]

            if self.queues[queue_name]['auto_delete'] and not remaining:
                del self.queues[queue_name]
                self.bindings = [binding for binding in self.bindings if binding[2] != queue_name]


    def drain(self):
        for channel in self.channels:
            channel.drain()


    def stop(self):
        for channel in self.channels:
            channel.stop()


# end of class FakeBroker



class FakeChannel(amqprr.TopicChannel):
    """ A :class:`amqprr.TopicChannel` attached to a :class:`FakeBroker`.
        Callbacks run on a dedicated thread, one at a time, the same way the
        pika I/O thread would run them.

        Assigning an exception to ``failures[operation]`` makes that
        operation raise it.
    """

    def __init__(self, broker):

        self.broker = broker
        self.failures = dict()
        self.callbacks = dict()
        self.closed = False

        self._work = queue.Queue()
        self.thread = threading.Thread(target=self._run)
        self.thread.daemon = True
        self.thread.start()


    def _run(self):

        while True:
            work = self._work.get()

            try:
                if work is None:
                    return

                function, args = work

                try:
                    function(*args)
                except Exception:
                    traceback.print_exc()
            finally:
                self._work.task_done()


    def schedule(self, function, *args):
        self._work.put((function, args))


    def drain(self):
        """ Wait until every scheduled callback has run.
        """

        self._work.join()


    def stop(self):
        self._work.put(None)
        self.thread.join(timeout=5)


    def _check(self, operation):

        if self.closed:
            raise amqprr.ChannelClosed('fake channel closed')

        exception = self.failures.get(operation)

        if exception is not None:
            raise exception


    def declare_exchange(self, name, durable=True, auto_delete=False):
        self._check('declare_exchange')

        with self.broker.lock:
            self.broker.exchanges[name] = dict(durable=durable, auto_delete=auto_delete)


    def declare_queue(self, name='', durable=True, exclusive=False, auto_delete=True):
        self._check('declare_queue')

        if name == '':
            name = self.broker.generate('amq.gen-')

        with self.broker.lock:
            self.broker.queues[name] = dict(durable=durable, exclusive=exclusive, auto_delete=auto_delete)

        return name


    def bind_queue(self, queue, exchange, topic):
        self._check('bind_queue')

        with self.broker.lock:
            self.broker.bindings.append((exchange, topic, queue))


    def consume(self, queue, on_delivery, on_cancel, on_shutdown, auto_ack=True):
        self._check('consume')

        consumer_tag = self.broker.generate('ctag-')

        with self.broker.lock:
            self.callbacks[consumer_tag] = (on_delivery, on_cancel, on_shutdown)
            self.broker.consumers[consumer_tag] = (queue, self)

        return consumer_tag


    def cancel(self, consumer_tag):
        self._check('cancel')

        with self.broker.lock:
            self.callbacks.pop(consumer_tag, None)

        self.broker.remove_consumer(consumer_tag)


    def publish(self, exchange, topic, properties, body):
        self._check('publish')
        self.broker.route(exchange, topic, properties, body)


    def close(self, reason='fake channel closed'):

        if self.closed:
            return

        self.closed = True

        with self.broker.lock:
            callbacks = list(self.callbacks.items())
            self.callbacks.clear()

        for consumer_tag, (on_delivery, on_cancel, on_shutdown) in callbacks:
            self.broker.remove_consumer(consumer_tag)
            self.schedule(on_shutdown, consumer_tag, reason)


    # Test helpers that simulate broker-side events.

    def deliver(self, consumer_tag, properties, body):

        with self.broker.lock:
            callbacks = self.callbacks.get(consumer_tag)

        if callbacks is None:
            return

        on_delivery = callbacks[0]
        on_delivery(consumer_tag, properties, body)


    def inject(self, consumer_tag, properties, body, as_tag=None):
        """ Hand a message straight to the delivery callback registered for
            *consumer_tag*, claiming to come from *as_tag* if specified.
        """

        with self.broker.lock:
            on_delivery = self.callbacks[consumer_tag][0]

        if as_tag is None:
            as_tag = consumer_tag

        self.schedule(on_delivery, as_tag, properties, body)


    def broker_cancel(self, consumer_tag, as_tag=None):

        if as_tag is None:
            with self.broker.lock:
                on_cancel = self.callbacks.pop(consumer_tag)[1]
            self.broker.remove_consumer(consumer_tag)
            self.schedule(on_cancel, consumer_tag)
        else:
            with self.broker.lock:
                on_cancel = self.callbacks[consumer_tag][1]
            self.schedule(on_cancel, as_tag)


    def shutdown(self, reason='connection reset by peer'):
        self.close(reason)


# end of class FakeChannel



@pytest.fixture
def broker():

    broker = FakeBroker()
    yield broker
    broker.stop()


@pytest.fixture
def channel(broker):
    return broker.channel()


@pytest.fixture
def exchange():
    return EXCHANGE


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
