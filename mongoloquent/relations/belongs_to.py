"""
### belongsTo
The inverse of hasOne and hasMany: the parent refers to the related document by `foreign_key`:

```python
class Post(Model):
    @relation
    def user(self):
        return self.belongs_to(User)  # posts.userId -> users._id

post.user().associate(user)  # sets `post.userId`, and saves the post
```

A `$lookup` and an `$unwind`: when there's no related document, the field is absent.
"""

from typing import List

from .base import RelationDescriptor, RelationQuery, lookup_stage
from .lookup import unwind_stage
from ..helpers import to_object_id


class BelongsToRelation(RelationDescriptor):
    def __init__(self, parent, related: type, foreign_key: str = None, owner_key: str = '_id'):
        super(BelongsToRelation, self).__init__(parent, related)
        #: Field of the parent that refers to the related document
        self.foreign_key = foreign_key or '{}Id'.format(related.__name__.lower())
        #: Field of the related document that the foreign key refers to
        self.owner_key = owner_key

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        return [
            lookup_stage(self.related_collection, self.foreign_key, self.owner_key, alias, pipeline),
            unwind_stage(alias),
        ]


class BelongsTo(RelationQuery):
    """ Query for the owner document of belongsTo """

    def relation_conditions(self):
        d = self.descriptor
        self.where(d.owner_key, d.parent_value(d.foreign_key))

    def associate(self, owner):
        """ Make the parent belong to `owner`, and save the parent

        :param owner: A model instance, or an id
        :return: The parent
        """
        d = self.descriptor
        if isinstance(owner, d.related):
            value = owner.get_attribute(d.owner_key)
        else:
            value = to_object_id(owner)

        self.parent.set(d.foreign_key, value)
        return self.parent.save()

    def dissociate(self):
        """ Make the parent belong to nothing, and save the parent

        :return: The parent
        """
        self.parent.set(self.descriptor.foreign_key, None)
        return self.parent.save()
