"""
### morphTo
A polymorphic one-to-one: the related document refers to the parent by an id and a type name,
so documents of different models can share the same related collection:

```python
class Post(Model):
    @relation
    def image(self):
        # images.imageableId -> posts._id, images.imageableType == 'Post'
        return self.morph_to(Image, 'imageable')
```

A `$lookup` filtered by the type, and an `$unwind`: when there's no related document, the field is absent.
"""

from typing import List

from .base import RelationDescriptor, RelationQuery, lookup_stage
from .lookup import unwind_stage


class MorphToRelation(RelationDescriptor):
    def __init__(self, parent, related: type, name: str):
        super(MorphToRelation, self).__init__(parent, related)
        #: Name of the morph: prefix for the fields
        self.name = name
        #: Field of the related document that refers to the parent
        self.morph_id = '{}Id'.format(name)
        #: Field of the related document that has the name of the parent model
        self.morph_type = '{}Type'.format(name)

    def filter_conditions(self) -> List[dict]:
        conditions = super(MorphToRelation, self).filter_conditions()
        conditions.append({'$eq': ['${}'.format(self.morph_type), self.parent_name]})
        return conditions

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.related_collection, '_id', self.morph_id, alias, pipeline),
            unwind_stage(alias),
        ]

    def link_attributes(self) -> dict:
        """ The fields that link a related document to the parent """
        return {
            self.morph_id: self.parent_value('_id'),
            self.morph_type: self.parent_name,
        }


class MorphTo(RelationQuery):
    """ Query for the related document of morphTo """

    def relation_conditions(self):
        for column, value in self.descriptor.link_attributes().items():
            self.where(column, value)
