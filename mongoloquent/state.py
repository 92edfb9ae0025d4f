""" Per-builder query state

Every QueryBuilder owns one QueryState. Chained calls fill it in; a terminal operation
(get, first, count, insert, delete, ...) compiles it, runs it, and then resets it,
even if the operation has failed. Nothing is ever kept on class level.
"""

from typing import List, Optional


class WhereClause:
    """ A single condition from a where() call

        Consists of: a column, an operator token, a value,
        a boolean ('and' | 'or') and a cost class: E (equality), R (range), S (structural).
    """

    __slots__ = ('column', 'operator', 'value', 'boolean', 'cost_class')

    def __init__(self, column: str, operator: str, value, boolean: str = 'and', cost_class: str = 'R'):
        self.column = column
        self.operator = operator
        self.value = value
        self.boolean = boolean
        self.cost_class = cost_class

    @property
    def is_nested(self) -> bool:
        """ Does it refer to a field of a related (looked-up) document? """
        return '.' in self.column

    def __repr__(self):
        return '{}({!r} {} {!r}, {}, {})'.format(
            self.__class__.__name__,
            self.column, self.operator, self.value, self.boolean, self.cost_class)

    def __eq__(self, other):
        return isinstance(other, WhereClause) and all(
            getattr(self, k) == getattr(other, k)
            for k in self.__slots__
        )


class OrderClause:
    """ A single order_by() call """

    __slots__ = ('column', 'direction', 'case_sensitive')

    def __init__(self, column: str, direction: int = 1, case_sensitive: bool = True):
        self.column = column
        self.direction = direction
        self.case_sensitive = case_sensitive

    def __repr__(self):
        return '{}({!r}, {:+d})'.format(self.__class__.__name__, self.column, self.direction)


class QueryState:
    """ The mutable part of a QueryBuilder

        The fields fall into two groups:

        * Configuration, set once: collection, connection, field names.
          These survive reset().
        * Query state: everything that where(), select(), order_by(), with_() etc put in.
          These are wiped by reset().
    """

    def __init__(self, settings: dict):
        #: Settings this state has been created with (a mongoloquent.settings.Settings)
        self.settings = settings

        self.reset()

    def reset(self) -> 'QueryState':
        """ Reset the query state to defaults. Configuration is kept. """
        #: Raw stages given with raw()
        self.stages = []  # type: List[dict]
        #: Columns to select
        self.columns = []  # type: List[str]
        #: Columns to exclude
        self.excludes = []  # type: List[str]
        #: Conditions
        self.wheres = []  # type: List[WhereClause]
        #: Sorting
        self.orders = []  # type: List[OrderClause]
        #: Grouping
        self.groups = []  # type: List[str]
        #: Soft-delete visibility
        self.with_trashed = False
        self.only_trashed = False
        #: Slicing
        self.offset = 0
        self.limit = 0
        #: find(id)
        self.id = None  # type: Optional[object]
        #: $lookup stages generated by relations
        self.lookups = []  # type: List[dict]
        #: Aliases of the relations loaded with with_()
        self.relations = []  # type: List[str]
        return self

    @property
    def is_empty(self) -> bool:
        """ Has nothing been put into this state? """
        return not (self.stages or self.columns or self.excludes or self.wheres or
                    self.orders or self.groups or self.lookups or
                    self.with_trashed or self.only_trashed or
                    self.offset or self.limit or self.id is not None)

    # region Configuration shortcuts

    @property
    def use_soft_delete(self) -> bool:
        return self.settings['use_soft_delete']

    @property
    def use_timestamps(self) -> bool:
        return self.settings['use_timestamps']

    @property
    def is_deleted(self) -> str:
        return self.settings['is_deleted']

    @property
    def deleted_at(self) -> str:
        return self.settings['deleted_at']

    # endregion
