"""
Mongoloquent is a fluent query builder and a relation-aware model layer for MongoDB.

Every chain of calls compiles into a single aggregation pipeline, which is sent to the database
in one round trip:

```python
User.where('age', '>=', 18) \
    .or_where('name', 'like', 'jo') \
    .order_by('name') \
    .with_('posts', {'select': ['title'], 'limit': 5}) \
    .paginate(page=1, limit=15)
```

Relations between models (hasOne, belongsTo, hasMany, hasManyThrough, belongsToMany,
and the polymorphic ones) are loaded with `$lookup` stages, with soft delete, field selection
and per-relation options taken care of.
"""

# Exceptions that are used here and there
from .exc import *

# Settings: connection, database, timestamps and soft delete configuration
from .settings import Settings

# Connection provider: a MongoClient per connection string
from .connection import Database

# The heart of Mongoloquent: the query builder, that compiles your calls into a pipeline
from .query import QueryBuilder

# Handlers that compile the individual parts of the query
from . import handlers

# Collection: a list of documents with a few helpers
from .collection import Collection

# Models and relations
from .model import Model, relation
from .relations import RelationOptions

# Pivot collections: attach, detach, sync, toggle
from .pivot import PivotSynchronizer

# Model-less queries and transactions
from .db import DB
