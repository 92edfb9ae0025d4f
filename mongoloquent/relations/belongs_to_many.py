"""
### belongsToMany
Many-to-many through a pivot collection, where every pivot document refers to both sides:

```python
class User(Model):
    @relation
    def roles(self):
        # role_user.userId -> users._id; role_user.roleId -> roles._id
        return self.belongs_to_many(Role)

user.roles().attach(role_id)
```

The pivot collection is named after both models, sorted: `role_user`.
Give a Model class as `pivot` to use its collection, timestamps and soft delete settings.

Two `$lookup`s: the pivot documents go into a temporary `pivot` field, which is removed afterwards.
"""

from typing import List, Union

from . import lookup
from .base import RelationDescriptor, RelationQuery, SyncsPivot, lookup_stage
from ..pivot import PivotSynchronizer
from ..settings import Settings


class BelongsToManyRelation(RelationDescriptor):
    many = True

    def __init__(self, parent, related: type, pivot: Union[str, type] = None,
                 foreign_pivot_key: str = None, related_pivot_key: str = None,
                 parent_key: str = '_id', related_key: str = '_id'):
        super(BelongsToManyRelation, self).__init__(parent, related)

        #: Settings of the pivot collection
        self.pivot_settings = self._pivot_settings(pivot)
        #: Field of the pivot documents that refers to the parent
        self.foreign_pivot_key = foreign_pivot_key or '{}Id'.format(self.parent_name.lower())
        #: Field of the pivot documents that refers to the related document
        self.related_pivot_key = related_pivot_key or '{}Id'.format(related.__name__.lower())
        #: Field of the parent that `foreign_pivot_key` refers to
        self.parent_key = parent_key
        #: Field of the related document that `related_pivot_key` refers to
        self.related_key = related_key

    def _pivot_settings(self, pivot) -> Settings:
        # A pivot model: its own settings
        if isinstance(pivot, type):
            return pivot.get_settings()

        # A collection name, or nothing: a plain collection with timestamps
        if pivot is None:
            pivot = '_'.join(sorted((self.parent_name.lower(), self.related.__name__.lower())))
        return self.parent_class.get_settings().and_more(
            collection=pivot,
            use_timestamps=True,
            use_soft_delete=False,
        )

    @property
    def pivot_collection(self) -> str:
        return self.pivot_settings['collection']

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            # Detached links of a soft-delete pivot are only flagged
            lookup_stage(self.pivot_collection, self.parent_key, self.foreign_pivot_key, 'pivot',
                         lookup.match_expr(lookup.soft_delete_conditions_for(self.pivot_settings))),
            lookup_stage(self.related_collection, 'pivot.{}'.format(self.related_pivot_key),
                         self.related_key, alias, pipeline),
            {'$project': {'pivot': 0}},
        ]


class BelongsToMany(SyncsPivot, RelationQuery):
    """ Query for the related documents of belongsToMany

        Loads the related ids from the pivot collection first: that's one more query.
    """

    def relation_conditions(self):
        d = self.descriptor
        related_ids = self.related_query(d.pivot_settings) \
            .where(d.foreign_pivot_key, d.parent_value(d.parent_key)) \
            .pluck(d.related_pivot_key)
        self.where_in(d.related_key, related_ids)

    def pivot(self) -> PivotSynchronizer:
        d = self.descriptor
        return PivotSynchronizer(
            lambda: self.related_query(d.pivot_settings),
            {d.foreign_pivot_key: d.parent_value(d.parent_key)},
            d.related_pivot_key)
