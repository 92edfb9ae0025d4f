"""
Every chained call on a QueryBuilder puts something into its QueryState.
When a terminal method is called, handlers compile the state into an aggregation pipeline:

* `MongoFilter`: [Conditions](#conditions): where() clauses, soft delete, find(id) -> `$match`
* `MongoProject`: [Projection](#projection): select() and exclude() -> `$project`
* `MongoLimit`: [Slice Operation](#slice-operation): skip() and limit() -> `$skip`, `$limit`
* `MongoSort`: [Sorting](#sorting): order_by() -> `$project`, `$sort`, `$replaceRoot`
* `MongoGroup`: [Grouping](#grouping): group_by() -> `$group`
* `MongoCount`, `MongoAggregate`: [Aggregation](#aggregation): count(), max(), etc

The handlers are pure: they read the state and give stages, nothing more.
QueryBuilder decides on the order of stages, runs the pipeline, and resets the state.
"""

from .filter import MongoFilter
from .project import MongoProject
from .limit import MongoLimit
from .sort import MongoSort
from .group import MongoGroup
from .aggregate import MongoCount, MongoAggregate
