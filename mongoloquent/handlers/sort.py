"""
### Sorting
Sorting corresponds to the `$sort` stage of a pipeline.

```python
User.order_by('age').order_by('balance', 'desc').get()
```

Every `order_by()` call adds one more key to the same `$sort`: the first call has the highest priority.

Case-insensitive sorting is possible: `order_by('name', 'asc', case_sensitive=False)`.
MongoDB can't sort on an expression, so the sort keys are computed by a `$project` stage:

```
{ $project: { document: '$$ROOT', name: 1, lowercase_name: { $toLower: '$name' } } }
{ $sort: { lowercase_name: 1 } }
{ $replaceRoot: { newRoot: '$document' } }
```

The original document is kept under `document` and restored by `$replaceRoot`.
"""

from typing import List, Tuple, Union

from .base import PipelineHandlerBase
from ..exc import InvalidArgumentException


#: Direction names
DIRECTIONS = {
    'asc': +1,
    'desc': -1,
}


def parse_direction(direction: Union[str, int]) -> int:
    """ Convert a direction ('asc' | 'desc' | +1 | -1) to an int

    :raises InvalidArgumentException
    """
    if isinstance(direction, str):
        try:
            return DIRECTIONS[direction.lower()]
        except KeyError:
            pass
    elif direction in (-1, +1) and not isinstance(direction, bool):
        return int(direction)
    raise InvalidArgumentException('Invalid sort direction: {!r}; use "asc" or "desc"'.format(direction))


class MongoSort(PipelineHandlerBase):
    """ Compiles order_by() into the $project / $sort / $replaceRoot triad """

    query_state_section_name = 'orders'

    def compile_sort(self) -> Tuple[dict, dict]:
        """ Compile the $project and the $sort objects

        :return: ($project, $sort)
        """
        project = {'document': '$$ROOT'}
        sort = {}

        for order in self.state.orders:
            project[order.column] = 1

            if order.case_sensitive:
                sort[order.column] = order.direction
            else:
                shadow = 'lowercase_{}'.format(order.column)
                project[shadow] = {'$toLower': '${}'.format(order.column)}
                sort[shadow] = order.direction

        return project, sort

    def compile_stages(self) -> List[dict]:
        # No ordering: no stages at all
        if self.is_input_empty():
            return []

        project, sort = self.compile_sort()
        return [
            {'$project': project},
            {'$sort': sort},
            {'$replaceRoot': {'newRoot': '$document'}},
        ]
