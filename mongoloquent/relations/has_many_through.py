"""
### hasManyThrough
The parent owns related documents through an intermediate collection:

```python
class Country(Model):
    @relation
    def posts(self):
        # users.countryId -> countries._id; posts.userId -> users._id
        return self.has_many_through(Post, User)
```

Two `$lookup`s: the intermediate documents go into a temporary `pivot` field,
which is removed afterwards.
"""

from typing import List

from .base import RelationDescriptor, RelationQuery, lookup_stage


class HasManyThroughRelation(RelationDescriptor):
    many = True

    def __init__(self, parent, related: type, through: type,
                 foreign_key: str = None, foreign_key_through: str = None,
                 local_key: str = '_id', local_key_through: str = '_id'):
        super(HasManyThroughRelation, self).__init__(parent, related)
        #: The intermediate model class
        self.through = through
        #: Field of the intermediate documents that refers to the parent
        self.foreign_key = foreign_key or '{}Id'.format(self.parent_name.lower())
        #: Field of the related documents that refers to the intermediate documents
        self.foreign_key_through = foreign_key_through or '{}Id'.format(through.__name__.lower())
        #: Field of the parent that `foreign_key` refers to
        self.local_key = local_key
        #: Field of the intermediate documents that `foreign_key_through` refers to
        self.local_key_through = local_key_through

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.through.get_settings()['collection'], self.local_key, self.foreign_key, 'pivot'),
            lookup_stage(self.related_collection, 'pivot.{}'.format(self.local_key_through),
                         self.foreign_key_through, alias, pipeline),
            {'$project': {'pivot': 0}},
        ]


class HasManyThrough(RelationQuery):
    """ Query for the related documents of hasManyThrough

        Loads the ids of the intermediate documents first: that's one more query.
    """

    def relation_conditions(self):
        d = self.descriptor
        through_ids = self.related_query(d.through.get_settings()) \
            .with_trashed() \
            .where(d.foreign_key, d.parent_value(d.local_key)) \
            .pluck(d.local_key_through)
        self.where_in(d.foreign_key_through, through_ids)
