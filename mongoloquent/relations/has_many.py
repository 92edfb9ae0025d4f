"""
### hasMany
The parent owns many related documents, which refer to the parent by `foreign_key`:

```python
class User(Model):
    @relation
    def posts(self):
        return self.has_many(Post)  # posts.userId -> users._id

user.posts().create({'title': 'Hello'})  # gets `userId` automatically
```

A `$lookup`: the field is always an array, possibly empty.
Sort, skip and limit options are applied within the sub-pipeline.
"""

from typing import List

from .base import RelationDescriptor, RelationQuery, CreatesRelated, lookup_stage


class HasManyRelation(RelationDescriptor):
    many = True

    def __init__(self, parent, related: type, foreign_key: str = None, local_key: str = '_id'):
        super(HasManyRelation, self).__init__(parent, related)
        #: Field of the related documents that refers to the parent
        self.foreign_key = foreign_key or '{}Id'.format(self.parent_name.lower())
        #: Field of the parent that the foreign key refers to
        self.local_key = local_key

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.related_collection, self.local_key, self.foreign_key, alias, pipeline),
        ]


class HasMany(CreatesRelated, RelationQuery):
    """ Query for the related documents of hasMany """

    def relation_conditions(self):
        d = self.descriptor
        self.where(d.foreign_key, d.parent_value(d.local_key))

    def link_attributes(self) -> dict:
        d = self.descriptor
        return {d.foreign_key: d.parent_value(d.local_key)}
