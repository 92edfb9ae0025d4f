"""
### Slice Operation
Slicing corresponds to the `$skip` and `$limit` stages of a pipeline.

```python
User.skip(200).take(100).get()  # 100 items per page, third page
```

Zero means "not set": no stage is emitted.
"""

from typing import List

from .base import PipelineHandlerBase
from ..exc import InvalidArgumentException


def validate_slice_value(name: str, value) -> int:
    """ Validate a value for skip() or limit(): non-negative int, or None (= 0)

    :raises InvalidArgumentException
    """
    if value is None:
        return 0
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgumentException('{} must be an integer, got {!r}'.format(name, value))
    if value < 0:
        raise InvalidArgumentException('{} must not be negative, got {!r}'.format(name, value))
    return value


class MongoLimit(PipelineHandlerBase):
    """ Compiles skip() and limit() into $skip and $limit stages """

    query_state_section_name = 'limit'

    def is_input_empty(self) -> bool:
        return not self.state.offset and not self.state.limit

    def compile_stages(self) -> List[dict]:
        stages = []

        if self.state.offset > 0:
            stages.append({'$skip': self.state.offset})

        if self.state.limit > 0:
            stages.append({'$limit': self.state.limit})

        return stages
