"""
### morphMany
A polymorphic one-to-many: like morphTo, but there are many related documents:

```python
class Post(Model):
    @relation
    def comments(self):
        # comments.commentableId -> posts._id, comments.commentableType == 'Post'
        return self.morph_many(Comment, 'commentable')

post.comments().create({'body': 'Nice'})  # gets `commentableId` and `commentableType`
```

A `$lookup` filtered by the type: the field is always an array, possibly empty.
"""

from typing import List

from .base import CreatesRelated, lookup_stage
from .morph_to import MorphToRelation, MorphTo


class MorphManyRelation(MorphToRelation):
    many = True

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.related_collection, '_id', self.morph_id, alias, pipeline),
        ]


class MorphMany(CreatesRelated, MorphTo):
    """ Query for the related documents of morphMany """

    def link_attributes(self) -> dict:
        return self.descriptor.link_attributes()
