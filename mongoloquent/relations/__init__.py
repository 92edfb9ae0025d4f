"""
Relations between models.

A relation is declared as a model method decorated with @relation, which returns a relation query:

```python
class User(Model):
    @relation
    def posts(self):
        return self.has_many(Post)

User.with_('posts').get()              # load with a $lookup
user.posts().where('draft', False).get()  # query the related documents of a loaded user
```

Every relation kind has two parts:

* A descriptor (`*Relation`): the models and the keys, and the lookup stages for with_()
* A query (`RelationQuery` subclass): a QueryBuilder for the related documents of a loaded model
"""

from .base import RelationOptions, RelationDescriptor, RelationQuery
from .has_one import HasOneRelation, HasOne
from .belongs_to import BelongsToRelation, BelongsTo
from .has_many import HasManyRelation, HasMany
from .has_many_through import HasManyThroughRelation, HasManyThrough
from .belongs_to_many import BelongsToManyRelation, BelongsToMany
from .morph_to import MorphToRelation, MorphTo
from .morph_many import MorphManyRelation, MorphMany
from .morph_to_many import MorphToManyRelation, MorphToMany
from .morphed_by_many import MorphedByManyRelation, MorphedByMany
