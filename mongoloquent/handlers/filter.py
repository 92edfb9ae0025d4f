"""
### Conditions
Conditions correspond to the `$match` stage of a pipeline.

Every where() call adds a clause: a column, an operator token, and a value:

```python
User.where('age', '>=', 18).where('sex', 'female').get()
```

#### Operators
The following operator tokens are supported:

* `=`, `eq` - equality check: `{ col: { $eq: value } }`. This is the default when no operator is given.
* `!=`, `ne` - inequality check: `{ col: { $ne: value } }`
* `>`, `gt`; `>=`, `gte`; `<`, `lt`; `<=`, `lte` - comparisons
* `in` - any of: `{ col: { $in: [...] } }`
* `notIn`, `nin` - none of: `{ col: { $nin: [...] } }`
* `like` - case-insensitive regular expression: `{ col: { $regex: value, $options: 'i' } }`
* `regex` - case-sensitive regular expression
* `between` - range: `{ col: { $gte: value[0], $lte: value[-1] } }`

An unsupported operator is an error: you'll get an `InvalidOperatorException` right away.

#### Boolean Operators
`where()` clauses are AND-ed together, `or_where()` clauses are OR-ed together.
When both are present, all AND clauses become one more alternative of the `$or`:

```python
User.where('age', 18).or_where('name', 'John')
# -> { $or: [ {name: {$eq: 'John'}}, {$and: [ {age: {$eq: 18}} ]} ] }
```

#### Evaluation order
Clauses are sorted by their cost class: equality checks (E) go first, then range checks (R),
then structural checks, like regular expressions (S). The sort is stable.

#### Soft delete
For models with soft delete, documents flagged with `isDeleted` are invisible.
`with_trashed()` makes them visible; `only_trashed()` shows nothing but them.

#### Related columns
Conditions on a dotted column (`'posts.title'`) refer to fields of a looked-up relation.
They go into a separate `$match` that runs after the relations are loaded.
"""

from typing import List, Optional

from .base import PipelineHandlerBase
from ..exc import InvalidOperatorException, InvalidArgumentException
from ..helpers import to_object_id, to_object_id_lenient
from ..state import QueryState, WhereClause


# region Operators

def _op(mongo_operator):
    """ Make a compiler for a plain `{ col: { $op: value } }` condition """
    return lambda column, value: {column: {mongo_operator: value}}


def _between(column, value):
    if not isinstance(value, (list, tuple)) or not value:
        raise InvalidArgumentException(
            'between() expects a list of [min, max] for column `{}`, got {!r}'.format(column, value))
    return {column: {'$gte': value[0], '$lte': value[-1]}}


#: Operator tokens, and how to compile them
OPERATORS = {
    '=': _op('$eq'),
    'eq': _op('$eq'),
    '!=': _op('$ne'),
    'ne': _op('$ne'),
    '>': _op('$gt'),
    'gt': _op('$gt'),
    '>=': _op('$gte'),
    'gte': _op('$gte'),
    '<': _op('$lt'),
    'lt': _op('$lt'),
    '<=': _op('$lte'),
    'lte': _op('$lte'),
    'in': _op('$in'),
    'notIn': _op('$nin'),
    'nin': _op('$nin'),
    'like': lambda column, value: {column: {'$regex': value, '$options': 'i'}},
    'regex': _op('$regex'),
    'between': _between,
}

#: Operators that are equality checks: cost class "E"
EQUALITY_OPERATORS = frozenset(('=', '!=', 'eq', 'ne'))

#: Operators that are structural checks: cost class "S"
STRUCTURAL_OPERATORS = frozenset(('like', 'regex'))

#: The order in which cost classes are evaluated
COST_CLASS_ORDER = ('E', 'R', 'S')


def validate_operator(column: str, operator: str) -> str:
    """ Make sure the operator is supported

    :raises InvalidOperatorException
    """
    if not isinstance(operator, str) or operator not in OPERATORS:
        raise InvalidOperatorException(operator, column)
    return operator


def cost_class(operator: str) -> str:
    """ Get the cost class for an operator: E, R, or S """
    if operator in EQUALITY_OPERATORS:
        return 'E'
    elif operator in STRUCTURAL_OPERATORS:
        return 'S'
    else:
        return 'R'

# endregion


class MongoFilter(PipelineHandlerBase):
    """ Compiles where() clauses into $match stages

        There are three scopes:

        * 'main': clauses on the document's own fields, plus find(id), plus soft delete.
          This $match goes first in the pipeline.
        * 'nested': clauses on dotted columns. This $match goes after the lookups.
        * 'all': everything, as one filter object. This is what write operations use.
    """

    query_state_section_name = 'wheres'

    def __init__(self, state: QueryState, scope: str = 'main'):
        super(MongoFilter, self).__init__(state)
        assert scope in ('main', 'nested', 'all')
        self.scope = scope

    def is_input_empty(self) -> bool:
        return not self.compile_stages()

    def compile_stages(self) -> List[dict]:
        """ Compile the $match stages

        Main scope: first, `{$match: {_id}}` if find(id) is used, then the conditions.
        """
        stages = []

        if self.scope != 'nested' and self.state.id is not None:
            stages.append({'$match': {'_id': to_object_id(self.state.id)}})

        criteria = self.compile_criteria()
        if criteria is not None:
            stages.append({'$match': criteria})

        return stages

    def compile_filter(self) -> dict:
        """ Compile a filter object for write operations: update_many(), delete_many(), etc

        Write APIs take filters, not pipelines: so we take the inner object of $match.
        When there are two of them (find(id) + conditions), they're AND-ed.
        """
        matches = [stage['$match'] for stage in self.compile_stages()]

        if not matches:
            return {}
        elif len(matches) == 1:
            return matches[0]
        else:
            return {'$and': matches}

    def compile_criteria(self) -> Optional[dict]:
        """ Compile the conditions into a single $match object

        :return: The object, or None if there are no conditions
        """
        ands = self._compile_clauses('and')
        ors = self._compile_clauses('or')
        visibility = self.compile_soft_delete_condition()

        # OR: the AND group becomes one more alternative
        if ors:
            if ands:
                ors.append({'$and': ands})
            if visibility:
                return {**visibility, '$or': ors}
            return {'$or': ors}

        # AND: soft delete is just one more equality check
        if visibility:
            ands.insert(0, visibility)
        if ands:
            return {'$and': ands}

        return None

    def compile_soft_delete_condition(self) -> Optional[dict]:
        """ The condition that implements soft-delete visibility

        :return: `{isDeleted: bool}`, or None when it does not apply
        """
        # Nested conditions refer to related documents; their visibility is the relation's business
        if self.scope == 'nested' or not self.state.use_soft_delete:
            return None

        if self.state.only_trashed:
            return {self.state.is_deleted: True}
        elif self.state.with_trashed:
            return None
        else:
            return {self.state.is_deleted: False}

    def _compile_clauses(self, boolean: str) -> List[dict]:
        """ Compile clauses of one boolean group, sorted by cost class """
        clauses = [w for w in self._clauses_in_scope() if w.boolean == boolean]
        clauses.sort(key=lambda w: COST_CLASS_ORDER.index(w.cost_class))
        return [self.compile_clause(w) for w in clauses]

    def _clauses_in_scope(self) -> List[WhereClause]:
        if self.scope == 'all':
            return list(self.state.wheres)
        nested = self.scope == 'nested'
        return [w for w in self.state.wheres if w.is_nested == nested]

    @staticmethod
    def compile_clause(where: WhereClause) -> dict:
        """ Compile a single clause into a condition

        :raises InvalidOperatorException
        """
        compiler = OPERATORS.get(where.operator)
        if compiler is None:
            raise InvalidOperatorException(where.operator, where.column)

        value = where.value
        if where.column == '_id':
            if isinstance(value, (list, tuple, set, frozenset)):
                value = [to_object_id_lenient(v) for v in value]
            else:
                value = to_object_id_lenient(value)

        return compiler(where.column, value)
