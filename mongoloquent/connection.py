""" Connection provider: MongoClient per connection string, cached """

import logging
import threading

from pymongo import MongoClient
from pymongo.database import Database as PyMongoDatabase

from .exc import ConfigurationException

logger = logging.getLogger(__name__)


class Database:
    """ Keeps one MongoClient per connection string

        Connection pooling is MongoClient's business: we just make sure that there's
        only one client per connection string in this process.
    """

    #: Connection string -> client
    _clients = {}
    _lock = threading.Lock()

    @classmethod
    def get_client(cls, connection: str) -> MongoClient:
        """ Get a client for the connection string; create it when missing """
        if not connection:
            raise ConfigurationException('No connection string configured')

        try:
            return cls._clients[connection]
        except KeyError:
            pass

        with cls._lock:
            if connection not in cls._clients:
                logger.debug('Connecting to MongoDB: %s', _redact(connection))
                cls._clients[connection] = MongoClient(connection)
            return cls._clients[connection]

    @classmethod
    def set_client(cls, connection: str, client: MongoClient):
        """ Register a client for the connection string. Useful to share an existing client. """
        with cls._lock:
            cls._clients[connection] = client

    @classmethod
    def get_db(cls, connection: str, database_name: str) -> PyMongoDatabase:
        """ Get a database from the client for the connection string """
        if not database_name:
            raise ConfigurationException('No database name configured')
        return cls.get_client(connection)[database_name]

    @classmethod
    def close(cls, connection: str = None):
        """ Close the client for a connection string; or all of them """
        with cls._lock:
            if connection is None:
                connections = list(cls._clients)
            else:
                connections = [connection] if connection in cls._clients else []

            for conn in connections:
                cls._clients.pop(conn).close()


def _redact(connection: str) -> str:
    """ Hide the password in a connection string, for logging """
    scheme, sep, rest = connection.partition('://')
    if '@' not in rest:
        return connection
    credentials, _, host = rest.rpartition('@')
    user = credentials.split(':', 1)[0]
    return '{}{}{}:***@{}'.format(scheme, sep, user, host)
