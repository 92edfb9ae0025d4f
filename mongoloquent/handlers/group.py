"""
### Grouping
Grouping corresponds to the `$group` stage of a pipeline.

```python
User.group_by('age').get()
# -> [ {_id: {age: 5}, count: 2}, {_id: {age: 10}, count: 1}, ... ]
```

Every `group_by()` call adds a key to the same composite `_id`: there's always one `$group` stage.
"""

from typing import List

from .base import PipelineHandlerBase


class MongoGroup(PipelineHandlerBase):
    """ Compiles group_by() into one $group stage """

    query_state_section_name = 'groups'

    def compile_stages(self) -> List[dict]:
        if self.is_input_empty():
            return []

        return [{
            '$group': {
                '_id': {column: '${}'.format(column) for column in self.state.groups},
                'count': {'$sum': 1},
            }
        }]
