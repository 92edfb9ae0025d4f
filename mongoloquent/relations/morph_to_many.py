"""
### morphToMany
A polymorphic many-to-many: pivot documents refer to the parent by an id and a type name,
so documents of different models can share the same related documents:

```python
class Post(Model):
    @relation
    def tags(self):
        # taggables.taggableId -> posts._id, taggables.taggableType == 'Post', taggables.tagId -> tags._id
        return self.morph_to_many(Tag, 'taggable')

post.tags().attach(tag_id)
```

The pivot collection is the morph name + "s": `taggables`.
"""

from typing import List

from .base import RelationDescriptor, RelationQuery, SyncsPivot, lookup_stage
from .lookup import match_expr
from ..pivot import PivotSynchronizer
from ..settings import Settings


class MorphPivotRelation(RelationDescriptor):
    """ Base for relations through a morph pivot collection """

    many = True

    def __init__(self, parent, related: type, name: str):
        super(MorphPivotRelation, self).__init__(parent, related)
        #: Name of the morph: prefix for the fields, and the name of the pivot collection
        self.name = name
        #: Field of the pivot documents that refers to the morphed document
        self.morph_id = '{}Id'.format(name)
        #: Field of the pivot documents that has the name of the morphed model
        self.morph_type = '{}Type'.format(name)

        #: Settings of the pivot collection: no timestamps, no soft delete
        self.pivot_settings = self.parent_class.get_settings().and_more(
            collection='{}s'.format(name),
            use_timestamps=False,
            use_soft_delete=False,
        )  # type: Settings

    @property
    def pivot_collection(self) -> str:
        return self.pivot_settings['collection']

    def type_match(self, type_name: str) -> List[dict]:
        """ Sub-pipeline for the pivot documents of a type """
        return match_expr([{'$eq': ['${}'.format(self.morph_type), type_name]}])


class MorphToManyRelation(MorphPivotRelation):
    @property
    def related_pivot_key(self) -> str:
        """ Field of the pivot documents that refers to the related document """
        return '{}Id'.format(self.related.__name__.lower())

    def owner(self) -> dict:
        """ Fields that identify the pivot documents of the parent """
        return {
            self.morph_id: self.parent_value('_id'),
            self.morph_type: self.parent_name,
        }

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.pivot_collection, '_id', self.morph_id, 'pivot', self.type_match(self.parent_name)),
            lookup_stage(self.related_collection, 'pivot.{}'.format(self.related_pivot_key), '_id', alias, pipeline),
            {'$project': {'pivot': 0}},
        ]


class MorphPivotQuery(SyncsPivot, RelationQuery):
    """ Query for the related documents of a relation through a morph pivot

        Loads the related ids from the pivot collection first: that's one more query.
    """

    def relation_conditions(self):
        d = self.descriptor
        query = self.related_query(d.pivot_settings)
        for column, value in d.owner().items():
            query.where(column, value)
        self.where_in('_id', query.pluck(d.related_pivot_key))

    def pivot(self) -> PivotSynchronizer:
        d = self.descriptor
        return PivotSynchronizer(lambda: self.related_query(d.pivot_settings), d.owner(), d.related_pivot_key)


class MorphToMany(MorphPivotQuery):
    """ Query for the related documents of morphToMany """
