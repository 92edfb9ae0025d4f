
class BaseMongoloquentException(Exception):
    """ Base for every error raised by Mongoloquent

        Every exception keeps the human-readable `message`,
        and the original `error` that caused it (if any).
    """

    def __init__(self, message: str, error: BaseException = None):
        self.message = message
        self.error = error

        if error is not None:
            message = '{message}: {error}'.format(message=message, error=error)
        super(BaseMongoloquentException, self).__init__(message)


class QueryException(BaseMongoloquentException):
    """ A query failed: either at compile time, or in the database """


class NotFoundException(BaseMongoloquentException):
    """ An ...OrFail() accessor has found nothing """


class TransactionException(BaseMongoloquentException):
    """ A transaction has failed, and retries are exhausted (or were not applicable) """


class InvalidArgumentException(BaseMongoloquentException):
    """ Invalid argument provided by the caller """


class InvalidOperatorException(InvalidArgumentException):
    """ A where() clause used an operator that is not supported """

    def __init__(self, operator: str, column: str):
        self.operator = operator
        self.column = column

        super(InvalidOperatorException, self).__init__(
            'Unsupported operator "{operator}" found in a condition for column `{column}`'.format(
                operator=operator,
                column=column)
        )


class ItemNotFoundException(BaseMongoloquentException):
    """ A Collection was expected to have an item, but it's empty """


class MultipleItemsFoundException(BaseMongoloquentException):
    """ A Collection was expected to have exactly one item, but there are more """

    def __init__(self, count: int):
        self.count = count
        super(MultipleItemsFoundException, self).__init__(
            'Expected exactly one item, {count} found'.format(count=count)
        )


class RelationNotFoundException(BaseMongoloquentException):
    """ with_() has mentioned a relation that the model does not declare """

    def __init__(self, model: str, relation: str):
        self.model = model
        self.relation = relation

        super(RelationNotFoundException, self).__init__(
            'Invalid relation "{relation}" for "{model}"'.format(
                relation=relation,
                model=model)
        )


class ConfigurationException(BaseMongoloquentException):
    """ Misconfiguration: missing collection name, unknown model, etc """
