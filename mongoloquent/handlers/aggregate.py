"""
### Aggregation
count(), max(), min(), avg() and sum() run a pipeline of conditions and a final stage that
computes the value:

```python
User.where('active', True).count()   # { $count: 'total' }
User.max('age')                      # { $group: { _id: null, max: { $max: '$age' } } }
```

An empty result gives 0.
"""

from numbers import Number
from typing import List

from .base import PipelineHandlerBase
from ..exc import InvalidArgumentException
from ..state import QueryState


#: Supported aggregate functions
AGGREGATE_FUNCTIONS = ('max', 'min', 'avg', 'sum')


class MongoCount(PipelineHandlerBase):
    """ The $count stage """

    query_state_section_name = 'wheres'

    #: The field the count is put into
    field = 'total'

    def compile_stages(self) -> List[dict]:
        return [{'$count': self.field}]

    def result_from(self, document) -> int:
        """ Get the count from the resulting document (or None) """
        return document[self.field] if document else 0


class MongoAggregate(PipelineHandlerBase):
    """ A `$group` stage that computes one value over all documents """

    query_state_section_name = 'wheres'

    def __init__(self, state: QueryState, function: str, column: str):
        super(MongoAggregate, self).__init__(state)

        if function not in AGGREGATE_FUNCTIONS:
            raise InvalidArgumentException('Unsupported aggregate function: {!r}'.format(function))
        if not column or not isinstance(column, str):
            raise InvalidArgumentException('{}() needs a column name, got {!r}'.format(function, column))

        self.function = function
        self.column = column

    def compile_stages(self) -> List[dict]:
        return [{
            '$group': {
                '_id': None,
                self.function: {'${}'.format(self.function): '${}'.format(self.column)},
            }
        }]

    def result_from(self, document):
        """ Get the value from the resulting document. Anything non-numeric gives 0 """
        value = document.get(self.function) if document else None
        if isinstance(value, Number) and not isinstance(value, bool):
            return value
        return 0
