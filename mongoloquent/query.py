"""
QueryBuilder: a chain of calls that compiles into one aggregation pipeline.

```python
User.query().where('age', '>=', 18).order_by('name').with_('posts').get()
```

Every chained call puts something into the builder's QueryState.
A terminal method (get, first, count, paginate, insert, update, delete, ...) compiles the state
with the handlers, sends it to MongoDB, and resets the state: always, even when it fails.
"""

import logging
import math
from functools import wraps
from typing import Iterable, List, Mapping, Optional, Union

from pymongo import ReturnDocument
from pymongo.collection import Collection as PyMongoCollection
from pymongo.errors import PyMongoError

from .collection import Collection
from .connection import Database
from .exc import QueryException, NotFoundException, InvalidArgumentException, ConfigurationException
from .handlers import MongoFilter, MongoProject, MongoLimit, MongoSort, MongoGroup, MongoCount, MongoAggregate
from .handlers.filter import validate_operator, cost_class
from .handlers.limit import validate_slice_value
from .handlers.sort import parse_direction
from .helpers import timestamps, soft_delete, flatten, to_object_id, to_object_ids
from .settings import Settings
from .state import QueryState, WhereClause, OrderClause

logger = logging.getLogger(__name__)


#: Marker for an argument that was not provided
MISSING = object()


def terminal(error_message: str):
    """ Decorator for terminal operations of a QueryBuilder

        * Database errors are wrapped into a QueryException, which keeps the original error
        * The query state is reset, no matter what happens
    """
    def decorator(method):
        @wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except PyMongoError as e:
                logger.error('%s (collection: %s): %s', error_message, self.collection_name, e)
                raise QueryException(error_message, e) from e
            finally:
                self.reset()
        return wrapper
    return decorator


class QueryBuilder:
    """ Fluent query builder for a MongoDB collection

        Can be used with a Model (Model.query()), or on its own (DB.collection('name')).
        With a model, documents are returned as model instances; without one, as dicts.

        A builder is not thread-safe: use a new one for every chain.
    """

    def __init__(self, collection: str = None, model: type = None, settings: Settings = None, session=None,
                 **overrides):
        """ Init a builder

        :param collection: Name of the collection. Models provide their own.
        :param model: The Model class to build queries for
        :type model: mongoloquent.model.Model
        :param settings: Settings. Default: the model's settings, or Settings.from_env()
        :param session: pymongo ClientSession to run all queries with (for transactions)
        :param overrides: Settings overrides; see Settings
        """
        if settings is None:
            settings = model.get_settings() if model is not None else Settings.from_env()

        #: Settings: connection, collection, soft delete, timestamps
        self.settings = settings.and_more(collection=collection, **overrides)
        if not self.settings['collection']:
            raise ConfigurationException('No collection name given for the query')

        #: The model to hydrate documents with (or None)
        self.model = model

        #: Query state. Reset after every terminal operation.
        self.state = QueryState(self.settings)

        #: Default attributes for inserted documents
        self.attributes = dict(getattr(model, 'attributes', None) or {})

        #: pymongo session
        self.session = session

        #: Relations to load with every query, unless already requested with with_()
        self.default_relations = list(getattr(model, 'default_with', None) or ())

        # Have the defaults been applied to the current state?
        self._defaults_applied = False

    # region Configuration

    @property
    def collection_name(self) -> str:
        return self.settings['collection']

    def get_collection(self) -> PyMongoCollection:
        """ Get the pymongo collection object """
        db = Database.get_db(self.settings['connection'], self.settings['database_name'])
        return db[self.collection_name]

    def using_session(self, session) -> 'QueryBuilder':
        """ Run all queries with a pymongo session (e.g. in a transaction) """
        self.session = session
        return self

    def connection(self, connection: str) -> 'QueryBuilder':
        """ Run all queries on another MongoDB deployment

            User.query().connection('mongodb://replica:27017').where('age', 18).get()
        """
        self.settings = self.settings.and_more(connection=connection)
        return self

    def database(self, database_name: str) -> 'QueryBuilder':
        """ Run all queries on another database of the same deployment """
        self.settings = self.settings.and_more(database_name=database_name)
        return self

    def reset(self) -> 'QueryBuilder':
        """ Reset the query state. Configuration is kept. """
        self.state.reset()
        self._defaults_applied = False
        return self

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.collection_name)

    # endregion

    # region Conditions

    def _add_where(self, column: str, operator: str, value, boolean: str) -> 'QueryBuilder':
        validate_operator(column, operator)
        self.state.wheres.append(WhereClause(column, operator, value, boolean, cost_class(operator)))
        return self

    def where(self, column: str, operator, value=MISSING) -> 'QueryBuilder':
        """ Add an AND condition

            where('age', 18)  # age = 18
            where('age', '>=', 18)  # age >= 18

        :param column: Column name. Dotted names refer to fields of related documents.
        :param operator: Operator token; or, when `value` is not given, the value
        :param value: The value
        :raises InvalidOperatorException
        """
        if value is MISSING:
            operator, value = '=', operator
        return self._add_where(column, operator, value, 'and')

    def or_where(self, column: str, operator, value=MISSING) -> 'QueryBuilder':
        """ Add an OR condition """
        if value is MISSING:
            operator, value = '=', operator
        return self._add_where(column, operator, value, 'or')

    def where_not(self, column: str, value) -> 'QueryBuilder':
        return self._add_where(column, '!=', value, 'and')

    def or_where_not(self, column: str, value) -> 'QueryBuilder':
        return self._add_where(column, '!=', value, 'or')

    def where_in(self, column: str, values: Iterable) -> 'QueryBuilder':
        return self._add_where(column, 'in', list(values), 'and')

    def or_where_in(self, column: str, values: Iterable) -> 'QueryBuilder':
        return self._add_where(column, 'in', list(values), 'or')

    def where_not_in(self, column: str, values: Iterable) -> 'QueryBuilder':
        return self._add_where(column, 'notIn', list(values), 'and')

    def or_where_not_in(self, column: str, values: Iterable) -> 'QueryBuilder':
        return self._add_where(column, 'notIn', list(values), 'or')

    def where_between(self, column: str, values: Iterable) -> 'QueryBuilder':
        """ Add a range condition: values[0] <= column <= values[-1] """
        return self._add_where(column, 'between', list(values), 'and')

    def or_where_between(self, column: str, values: Iterable) -> 'QueryBuilder':
        return self._add_where(column, 'between', list(values), 'or')

    def where_null(self, column: str) -> 'QueryBuilder':
        return self._add_where(column, '=', None, 'and')

    def or_where_null(self, column: str) -> 'QueryBuilder':
        return self._add_where(column, '=', None, 'or')

    def where_not_null(self, column: str) -> 'QueryBuilder':
        return self._add_where(column, '!=', None, 'and')

    def or_where_not_null(self, column: str) -> 'QueryBuilder':
        return self._add_where(column, '!=', None, 'or')

    def with_trashed(self) -> 'QueryBuilder':
        """ Include soft-deleted documents """
        self.state.with_trashed = True
        return self

    def only_trashed(self) -> 'QueryBuilder':
        """ Only soft-deleted documents """
        self.state.only_trashed = True
        return self

    # endregion

    # region Projection, sorting, grouping, slicing

    def select(self, *columns) -> 'QueryBuilder':
        """ Only load these columns. Accepts names, and lists of names. """
        for column in flatten(columns):
            if column not in self.state.columns:
                self.state.columns.append(column)
        return self

    def exclude(self, *columns) -> 'QueryBuilder':
        """ Load everything but these columns """
        for column in flatten(columns):
            if column not in self.state.excludes:
                self.state.excludes.append(column)
        return self

    def order_by(self, column: str, direction: Union[str, int] = 'asc', case_sensitive: bool = True) -> 'QueryBuilder':
        """ Sort by a column

        :param direction: 'asc' or 'desc'
        :param case_sensitive: False to sort by the lower-cased value
        :raises InvalidArgumentException: invalid direction
        """
        self.state.orders.append(OrderClause(column, parse_direction(direction), case_sensitive))
        return self

    def group_by(self, *columns) -> 'QueryBuilder':
        """ Group by columns. Gives documents like {_id: {col: value}, count: n} """
        for column in flatten(columns):
            if column not in self.state.groups:
                self.state.groups.append(column)
        return self

    def skip(self, value: int) -> 'QueryBuilder':
        self.state.offset = validate_slice_value('skip', value)
        return self

    offset = skip

    def limit(self, value: int) -> 'QueryBuilder':
        self.state.limit = validate_slice_value('limit', value)
        return self

    take = limit

    def raw(self, stages: Union[dict, List[dict]]) -> 'QueryBuilder':
        """ Add raw pipeline stages. They go right before relation lookups. """
        if isinstance(stages, Mapping):
            stages = [stages]
        self.state.stages.extend(stages)
        return self

    def lookup(self, lookup: dict) -> 'QueryBuilder':
        """ Add a raw $lookup stage

        :param lookup: Either the whole stage, {'$lookup': {...}}, or just its body
        """
        if '$lookup' not in lookup:
            lookup = {'$lookup': lookup}
        self.state.lookups.append(lookup)
        return self

    # endregion

    # region Relations

    def with_(self, relation: Union[str, Mapping], options: Mapping = None) -> 'QueryBuilder':
        """ Load a relation

            with_('posts')  # load the 'posts' relation
            with_('posts.comments')  # load 'posts', and 'comments' for every post
            with_({'posts': ['comments', 'likes']})  # load 'posts', and a couple of nested relations
            with_('posts', {'select': ['title'], 'sort': ('title', 'asc'), 'limit': 5})

        :param relation: Relation name, or a dict {relation: [nested relations]}
        :param options: RelationOptions for the (top-level) relation
        :raises RelationNotFoundException
        """
        if self.model is None:
            raise ConfigurationException('with_() needs a query made for a Model')

        if isinstance(relation, str):
            alias, _, rest = relation.partition('.')
            relations = {alias: [rest] if rest else []}
        else:
            relations = relation

        for alias, nested in relations.items():
            if isinstance(nested, str):
                nested = [nested]
            self.state.lookups.extend(self.model.relation_lookups(alias, options, list(nested or ())))
            self.state.relations.append(alias)
        return self

    def apply_defaults(self):
        """ Put the implied parts of the query into the state

        Loads the model's `default_with` relations.
        Relations override it to limit the query to the related documents.
        Called once before compiling every query: the state is reset after every terminal operation.
        """
        for relation in self.default_relations:
            if relation.partition('.')[0] not in self.state.relations:
                self.with_(relation)

    def _apply_defaults(self):
        if not self._defaults_applied:
            self._defaults_applied = True
            self.apply_defaults()

    # endregion

    # region Compiling

    def to_pipeline(self) -> List[dict]:
        """ Compile the read pipeline.

        Stage order: conditions, select, exclude, skip, limit, sorting, grouping,
        raw stages, relation lookups, conditions on related documents.

        This method does not reset the state.
        """
        self._apply_defaults()
        return self._compile_read_stages()

    def compile_filter(self) -> dict:
        """ Compile the conditions into a filter object for write operations.

        This method does not reset the state.
        """
        self._apply_defaults()
        return MongoFilter(self.state, 'all').compile_filter()

    def _compile_read_stages(self, slice: bool = True) -> List[dict]:
        state = self.state
        stages = []
        stages.extend(MongoFilter(state).compile_stages())
        stages.extend(MongoProject(state).compile_stages())
        if slice:
            stages.extend(MongoLimit(state).compile_stages())
        stages.extend(MongoSort(state).compile_stages())
        stages.extend(MongoGroup(state).compile_stages())
        stages.extend(state.stages)
        stages.extend(state.lookups)
        stages.extend(MongoFilter(state, 'nested').compile_stages())
        return stages

    def _compile_count_prefix(self, groups: bool = False) -> List[dict]:
        """ Stages that select the documents to count: conditions only, unless related documents are filtered

        :param groups: Count groups, not documents, when the query is grouped
        """
        state = self.state
        stages = MongoFilter(state).compile_stages()
        if groups:
            stages.extend(MongoGroup(state).compile_stages())
        stages.extend(state.stages)

        nested = MongoFilter(state, 'nested').compile_stages()
        if nested:
            stages.extend(state.lookups)
            stages.extend(nested)
        return stages

    # endregion

    # region Execution helpers

    def _aggregate(self, pipeline: List[dict]) -> list:
        logger.debug('aggregate(%s): %r', self.collection_name, pipeline)
        return list(self.get_collection().aggregate(pipeline, session=self.session))

    def _aggregate_one(self, pipeline: List[dict]) -> Optional[dict]:
        documents = self._aggregate(pipeline)
        return documents[0] if documents else None

    def _hydrate(self, document: Optional[dict]):
        """ Convert a document into a model instance (if there's a model) """
        if document is None or self.model is None:
            return document
        return self.model.hydrate(document)

    def _hydrate_many(self, documents: Iterable[dict]) -> Collection:
        return Collection(self._hydrate(document) for document in documents)

    def _prepare_insert(self, doc: Mapping) -> dict:
        """ Prepare a document for insertion: default attributes, timestamps, soft delete """
        s = self.settings
        doc = {**self.attributes, **_as_dict(doc)}
        doc = timestamps(s['use_timestamps'], doc, True,
                         created_at=s['created_at'], updated_at=s['updated_at'], tz=s['timezone'])
        doc = soft_delete(s['use_soft_delete'], doc, False,
                          is_deleted=s['is_deleted'], deleted_at=s['deleted_at'])
        return doc

    def _prepare_update(self, doc: Mapping) -> dict:
        """ Prepare a $set for an update: no _id, fresh `updated_at` """
        s = self.settings
        doc = _as_dict(doc)
        doc.pop('_id', None)
        return timestamps(s['use_timestamps'], doc, False,
                          created_at=s['created_at'], updated_at=s['updated_at'], tz=s['timezone'])

    # endregion

    # region Read

    @terminal('Failed to fetch documents')
    def get(self, *columns) -> Collection:
        """ Get the documents

        :param columns: Columns to select
        """
        self.select(*columns)
        documents = self._aggregate(self.to_pipeline())
        # Groups are not documents of the model
        if self.state.groups:
            return Collection(documents)
        return self._hydrate_many(documents)

    def all(self) -> Collection:
        """ Get all documents """
        return self.get()

    @terminal('Failed to fetch the first document')
    def first(self, *columns):
        """ Get the first document, or None """
        documents = self.get(*columns)
        return documents[0] if documents else None

    @terminal('Failed to fetch the first document')
    def first_or_fail(self, *columns):
        """ Get the first document

        :raises NotFoundException
        """
        document = self.first(*columns)
        if document is None:
            raise NotFoundException('No document found matching the query in "{}"'.format(self.collection_name))
        return document

    @terminal('Failed to find the document')
    def find(self, id):
        """ Find a document by id, or None

        :raises InvalidArgumentException: not an id
        """
        self.state.id = to_object_id(id)
        return self.first()

    @terminal('Failed to find the document')
    def find_or_fail(self, id):
        """ Find a document by id

        :raises NotFoundException
        """
        document = self.find(id)
        if document is None:
            raise NotFoundException('No document found with id {} in "{}"'.format(id, self.collection_name))
        return document

    @terminal('Failed to pluck values')
    def pluck(self, *columns) -> Collection:
        """ Get the values of a column (or dicts of a few columns) from every document """
        columns = flatten(columns)
        return self.get(*columns).pluck(*columns)

    @terminal('Failed to count documents')
    def count(self) -> int:
        self._apply_defaults()
        counter = MongoCount(self.state)
        stages = self._compile_count_prefix(groups=True) + counter.compile_stages()
        return counter.result_from(self._aggregate_one(stages))

    def max(self, column: str):
        return self._run_aggregate('max', column)

    def min(self, column: str):
        return self._run_aggregate('min', column)

    def avg(self, column: str):
        return self._run_aggregate('avg', column)

    def sum(self, column: str):
        return self._run_aggregate('sum', column)

    @terminal('Failed to calculate an aggregate')
    def _run_aggregate(self, function: str, column: str):
        self._apply_defaults()
        aggregate = MongoAggregate(self.state, function, column)
        return aggregate.result_from(self._aggregate_one(self._compile_count_prefix() + aggregate.compile_stages()))

    @terminal('Failed to paginate documents')
    def paginate(self, page: int = 1, limit: int = 15) -> dict:
        """ Get a page of documents, and the total count

        :param page: Page number, 1-based
        :param limit: Documents per page
        :return: {data: Collection, meta: {total, page, limit, lastPage}}
        :raises InvalidArgumentException
        """
        for name, value in (('page', page), ('limit', limit)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise InvalidArgumentException('paginate(): {} must be a positive integer, got {!r}'.format(name, value))

        self._apply_defaults()

        # The page
        window = [{'$skip': (page - 1) * limit}, {'$limit': limit}]
        documents = self._aggregate(self._compile_read_stages(slice=False) + window)
        data = Collection(documents) if self.state.groups else self._hydrate_many(documents)

        # The total
        counter = MongoCount(self.state)
        stages = self._compile_count_prefix(groups=True) + counter.compile_stages()
        total = counter.result_from(self._aggregate_one(stages))

        return {
            'data': data,
            'meta': {
                'total': total,
                'page': page,
                'limit': limit,
                'lastPage': math.ceil(total / limit),
            },
        }

    @terminal('Failed to fetch or create a document')
    def first_or_create(self, filter: Mapping, doc: Mapping = None):
        """ Find the first document that matches `filter`, or insert `{**filter, **doc}` """
        for column, value in filter.items():
            self.where(column, value)

        document = self.first()
        if document is not None:
            return document
        return self.insert({**filter, **(doc or {})})

    @terminal('Failed to fetch a document')
    def first_or_new(self, filter: Mapping, doc: Mapping = None):
        """ Find the first document that matches `filter`, or make a new one (not saved!) """
        for column, value in filter.items():
            self.where(column, value)

        document = self.first()
        if document is not None:
            return document

        payload = {**filter, **(doc or {})}
        return self.model(payload) if self.model is not None else payload

    # endregion

    # region Write

    @terminal('Failed to insert document')
    def insert(self, doc: Mapping):
        """ Insert a document

        :return: The document, with `_id`
        """
        document = self._prepare_insert(doc)
        logger.debug('insert_one(%s)', self.collection_name)
        result = self.get_collection().insert_one(document, session=self.session)
        document['_id'] = result.inserted_id
        return self._hydrate(document)

    create = insert

    @terminal('Failed to insert documents')
    def insert_many(self, docs: Iterable[Mapping]) -> list:
        """ Insert many documents

        :return: List of inserted ids
        """
        documents = [self._prepare_insert(doc) for doc in docs]
        if not documents:
            return []
        logger.debug('insert_many(%s): %d documents', self.collection_name, len(documents))
        result = self.get_collection().insert_many(documents, session=self.session)
        return list(result.inserted_ids)

    create_many = insert_many

    @terminal('Failed to update document')
    def update(self, doc: Mapping):
        """ Update the first matching document

        :return: The updated document, or None if nothing matched
        """
        filter = self.compile_filter()
        changes = self._prepare_update(doc)
        logger.debug('find_one_and_update(%s): %r', self.collection_name, filter)
        document = self.get_collection().find_one_and_update(
            filter, {'$set': changes},
            return_document=ReturnDocument.AFTER,
            session=self.session)
        return self._hydrate(document)

    @terminal('Failed to update documents')
    def update_many(self, doc: Mapping) -> int:
        """ Update all matching documents

        :return: The number of modified documents
        """
        filter = self.compile_filter()
        changes = self._prepare_update(doc)
        logger.debug('update_many(%s): %r', self.collection_name, filter)
        result = self.get_collection().update_many(filter, {'$set': changes}, session=self.session)
        return result.modified_count

    @terminal('Failed to update or create document')
    def update_or_create(self, filter: Mapping, doc: Mapping = None):
        """ Update the first document that matches `filter`, or insert a new one """
        for column, value in filter.items():
            self.where(column, value)

        payload = {**filter, **(doc or {})}
        document = self.update(payload)
        if document is not None:
            return document
        return self.insert(payload)

    update_or_insert = update_or_create

    @terminal('Failed to delete documents')
    def delete(self) -> int:
        """ Delete matching documents. With soft delete, they're only flagged.

        :return: The number of deleted documents
        """
        filter = self.compile_filter()
        collection = self.get_collection()
        s = self.settings

        if s['use_soft_delete']:
            changes = timestamps(s['use_timestamps'], {}, False,
                                 created_at=s['created_at'], updated_at=s['updated_at'], tz=s['timezone'])
            changes = soft_delete(True, changes, True,
                                  is_deleted=s['is_deleted'], deleted_at=s['deleted_at'], tz=s['timezone'])
            logger.debug('soft delete, update_many(%s): %r', self.collection_name, filter)
            return collection.update_many(filter, {'$set': changes}, session=self.session).modified_count

        logger.debug('delete_many(%s): %r', self.collection_name, filter)
        return collection.delete_many(filter, session=self.session).deleted_count

    @terminal('Failed to force delete documents')
    def force_delete(self) -> int:
        """ Physically delete matching documents. With soft delete, only the trashed ones. """
        self.only_trashed()
        filter = self.compile_filter()
        logger.debug('delete_many(%s): %r', self.collection_name, filter)
        return self.get_collection().delete_many(filter, session=self.session).deleted_count

    @terminal('Failed to destroy documents')
    def destroy(self, *ids) -> int:
        """ Delete documents by ids """
        self.where_in('_id', to_object_ids(flatten(ids)))
        return self.delete()

    @terminal('Failed to force destroy documents')
    def force_destroy(self, *ids) -> int:
        """ Physically delete documents by ids. With soft delete, only the trashed ones. """
        self.where_in('_id', to_object_ids(flatten(ids)))
        return self.force_delete()

    @terminal('Failed to restore documents')
    def restore(self) -> int:
        """ Un-delete soft-deleted documents

        :return: The number of restored documents
        """
        s = self.settings
        if not s['use_soft_delete']:
            return 0
        self.only_trashed()
        return self.update_many({s['is_deleted']: False, s['deleted_at']: None})

    # endregion


def _as_dict(doc) -> dict:
    """ Get a plain dict from a dict, or from a Model instance """
    if hasattr(doc, 'to_dict'):
        return doc.to_dict()
    return dict(doc)
