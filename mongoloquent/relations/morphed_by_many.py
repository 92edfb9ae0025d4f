"""
### morphedByMany
The inverse of morphToMany: from the shared related document to the morphed documents of one model:

```python
class Tag(Model):
    @relation
    def posts(self):
        # taggables.tagId -> tags._id, taggables.taggableType == 'Post', taggables.taggableId -> posts._id
        return self.morphed_by_many(Post, 'taggable')
```
"""

from typing import List

from .base import lookup_stage
from .morph_to_many import MorphPivotRelation, MorphPivotQuery


class MorphedByManyRelation(MorphPivotRelation):
    @property
    def parent_pivot_key(self) -> str:
        """ Field of the pivot documents that refers to the parent """
        return '{}Id'.format(self.parent_name.lower())

    @property
    def related_pivot_key(self) -> str:
        return self.morph_id

    def owner(self) -> dict:
        return {
            self.parent_pivot_key: self.parent_value('_id'),
            self.morph_type: self.related.__name__,
        }

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.pivot_collection, '_id', self.parent_pivot_key, 'pivot',
                         self.type_match(self.related.__name__)),
            lookup_stage(self.related_collection, 'pivot.{}'.format(self.morph_id), '_id', alias, pipeline),
            {'$project': {'pivot': 0}},
        ]


class MorphedByMany(MorphPivotQuery):
    """ Query for the morphed documents of morphedByMany """
