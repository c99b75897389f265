""" Broker connection settings. Everything is driven by environment
    variables; an explicit mapping can be supplied in place of
    :data:`os.environ` for any of the functions here.
"""

import os
import ssl

import pika


untruths = set(('', '0', 'false', 'f', 'no', 'n', 'off', 'disable'))

default_host = 'localhost'
default_port = 5672
default_tls_port = 5671
default_vhost = '/'
default_user = 'guest'
default_password = 'guest'
default_heartbeat = 600
default_exchange = 'amqprr'

# Matches the values used by the request/response transports: a generous
# heartbeat, and a bound on how long a publish may stall when the broker
# applies flow control.

blocked_connection_timeout = 300


def exchange(environ=None):
    """ Return the name of the default exchange, as set by the
        ``AMQPRR_EXCHANGE`` environment variable.
    """

    environ = os.environ if environ is None else environ
    return environ.get('AMQPRR_EXCHANGE', default_exchange)



def parameters(url=None, environ=None):
    """ Return a :class:`pika.ConnectionParameters` instance describing how
        to reach the broker. If a *url* is provided, or ``AMQPRR_URL`` is
        set, it is parsed as an ``amqp://`` or ``amqps://`` URL and nothing
        else is consulted. Otherwise the individual ``AMQPRR_*`` variables
        are combined with the defaults in this module.
    """

    environ = os.environ if environ is None else environ

    if url is None:
        url = environ.get('AMQPRR_URL')

    if url:
        return pika.URLParameters(url)

    tls = flag(environ.get('AMQPRR_TLS', ''))

    if tls:
        port = default_tls_port
    else:
        port = default_port

    host = environ.get('AMQPRR_HOST', default_host)
    port = _integer(environ, 'AMQPRR_PORT', port)
    heartbeat = _integer(environ, 'AMQPRR_HEARTBEAT', default_heartbeat)
    vhost = environ.get('AMQPRR_VHOST', default_vhost)
    user = environ.get('AMQPRR_USER', default_user)
    password = environ.get('AMQPRR_PASSWORD', default_password)

    credentials = pika.PlainCredentials(user, password)

    if tls:
        context = ssl.create_default_context()
        ssl_options = pika.SSLOptions(context, host)
    else:
        ssl_options = None

    return pika.ConnectionParameters(
        host=host,
        port=port,
        virtual_host=vhost,
        credentials=credentials,
        ssl_options=ssl_options,
        heartbeat=heartbeat,
        blocked_connection_timeout=blocked_connection_timeout,
    )



def flag(value):
    """ Interpret an environment variable *value* as a boolean.
    """

    value = str(value).strip().lower()
    return value not in untruths



def _integer(environ, name, default):

    try:
        value = environ[name]
    except KeyError:
        return default

    try:
        return int(value)
    except ValueError:
        raise ValueError('%s must be an integer, not %r' % (name, value))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
