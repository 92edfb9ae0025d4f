"""
### Projection
Projection corresponds to the `$project` stage of a pipeline: it chooses the fields to load.

```python
User.select('name', 'email').get()   # only load these fields (and `_id`)
User.exclude('password').get()       # load everything but these fields
User.get('name', ['email', 'age'])   # get() also takes fields to select
```

Inclusion and exclusion can't be mixed in one `$project` stage,
so when both are used, they become two separate stages: inclusion first.
"""

from typing import List

from .base import PipelineHandlerBase


class MongoProject(PipelineHandlerBase):
    """ Compiles select() and exclude() into $project stages """

    query_state_section_name = 'columns'

    def is_input_empty(self) -> bool:
        return not self.state.columns and not self.state.excludes

    def compile_stages(self) -> List[dict]:
        stages = []

        # Inclusion
        if self.state.columns:
            stages.append({'$project': dict.fromkeys(self.state.columns, 1)})

        # Exclusion
        if self.state.excludes:
            stages.append({'$project': dict.fromkeys(self.state.excludes, 0)})

        return stages
