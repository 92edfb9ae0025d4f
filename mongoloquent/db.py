"""
DB: queries without a model, and transactions.

```python
DB.collection('logs').where('level', 'error').count()

def transfer(session):
    Account.query(session).where('_id', a).update({'balance': 0})
    Account.query(session).where('_id', b).update({'balance': 100})

DB.transaction(transfer, retries=2)
```
"""

import logging
from typing import Callable

from pymongo.errors import PyMongoError

from .connection import Database
from .exc import TransactionException
from .query import QueryBuilder
from .settings import Settings

logger = logging.getLogger(__name__)


#: Error labels of transaction errors that are worth retrying
RETRYABLE_ERROR_LABELS = ('TransientTransactionError', 'UnknownTransactionCommitResult')


class DB:
    """ Entry point for model-less queries and transactions """

    @classmethod
    def collection(cls, name: str, **settings) -> QueryBuilder:
        """ Start a query for a collection. Documents are dicts.

        :param name: Collection name
        :param settings: Settings overrides: connection, database_name, use_soft_delete, ...
        """
        return QueryBuilder(collection=name, settings=Settings.from_env(), **settings)

    @classmethod
    def transaction(cls, fn: Callable, retries: int = 0, connection: str = None, transaction_options: dict = None):
        """ Run a function in a transaction

        The function gets a pymongo ClientSession: pass it to your queries, e.g. `User.query(session)`.

        :param fn: Callable(session)
        :param retries: How many more times to try when the transaction fails with a transient error
        :param connection: Connection string. Default: from the environment
        :param transaction_options: Keyword arguments for with_transaction():
            read_concern, write_concern, read_preference, max_commit_time_ms
        :return: Whatever `fn` returns
        :raises TransactionException
        """
        client = Database.get_client(connection or Settings.from_env()['connection'])

        attempt = 0
        while True:
            try:
                with client.start_session() as session:
                    return session.with_transaction(fn, **(transaction_options or {}))
            except Exception as e:
                if attempt < retries and is_retryable(e):
                    attempt += 1
                    logger.warning('Transaction failed, retrying (%d of %d): %s', attempt, retries, e)
                    continue

                logger.error('Transaction failed: %s', e)
                raise TransactionException('Transaction failed', e) from e


def is_retryable(error: BaseException) -> bool:
    """ Is it a transaction error worth retrying?

    Looks at the error, and at the database error it wraps (if any)
    """
    for e in (error, getattr(error, 'error', None), error.__cause__):
        if isinstance(e, PyMongoError) and any(e.has_error_label(label) for label in RETRYABLE_ERROR_LABELS):
            return True
    return False
