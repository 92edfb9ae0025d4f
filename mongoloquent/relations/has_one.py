"""
### hasOne
The parent owns one related document, which refers to the parent by `foreign_key`:

```python
class User(Model):
    @relation
    def phone(self):
        return self.has_one(Phone)  # phones.userId -> users._id
```

A `$lookup` and an `$unwind`: when there's no related document, the field is absent.
"""

from typing import List

from .base import RelationDescriptor, RelationQuery, lookup_stage
from .lookup import unwind_stage


class HasOneRelation(RelationDescriptor):
    def __init__(self, parent, related: type, foreign_key: str = None, local_key: str = '_id'):
        super(HasOneRelation, self).__init__(parent, related)
        #: Field of the related document that refers to the parent
        self.foreign_key = foreign_key or '{}Id'.format(self.parent_name.lower())
        #: Field of the parent that the foreign key refers to
        self.local_key = local_key

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.related_collection, self.local_key, self.foreign_key, alias, pipeline),
            unwind_stage(alias),
        ]


class HasOne(RelationQuery):
    """ Query for the related document of hasOne """

    def relation_conditions(self):
        d = self.descriptor
        self.where(d.foreign_key, d.parent_value(d.local_key))
