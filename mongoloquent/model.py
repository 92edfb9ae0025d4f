"""
Model: a collection, its configuration, its relations, and its documents.

```python
class User(Model):
    collection = 'users'
    use_soft_delete = True
    hidden = ('password',)

    @relation
    def posts(self):
        return self.has_many(Post)


User.where('age', '>=', 18).with_('posts').get()  # -> Collection of User instances

user = User.find(id)
user.set('name', 'John')  # changes go through set() / fill()
user.save()               # only the changes are sent
```

Loaded relations are fields of the document: read them with `user['posts']`.
`user.posts()` is the relation itself: a query for the related documents.

Every QueryBuilder method is available on the model class as a shortcut: `User.where()` is `User.query().where()`.
"""

import logging
from typing import Dict, Iterable, Mapping, Union

from .exc import ConfigurationException, NotFoundException, RelationNotFoundException
from .helpers import flatten
from .query import QueryBuilder
from .relations import (
    HasOneRelation, HasOne,
    BelongsToRelation, BelongsTo,
    HasManyRelation, HasMany,
    HasManyThroughRelation, HasManyThrough,
    BelongsToManyRelation, BelongsToMany,
    MorphToRelation, MorphTo,
    MorphManyRelation, MorphMany,
    MorphToManyRelation, MorphToMany,
    MorphedByManyRelation, MorphedByMany,
)
from .settings import Settings
from .tracking import ChangeTracker
from .util import method_decorator

logger = logging.getLogger(__name__)


class relation(method_decorator):
    """ Marks a model method as a relation

        The method has to return a relation query: self.has_many(...), self.belongs_to(...), etc.
        Relations are collected when the class is created, and with_() can only load those.

        class User(Model):
            @relation
            def posts(self):
                return self.has_many(Post)
    """

    METHOD_PROPERTY_NAME = 'relation'


#: Model class attributes that override Settings keys
SETTINGS_ATTRIBUTES = (
    'connection', 'database_name', 'timezone',
    'use_timestamps', 'created_at', 'updated_at',
    'use_soft_delete', 'is_deleted', 'deleted_at',
)


class Model:
    """ Base class for models

        Configuration is done with class attributes. `None` means "the default", see Settings.
    """

    # region Configuration

    #: Name of the collection. Default: lower-cased class name + "s"
    collection = None  # type: str
    #: Connection string
    connection = None  # type: str
    #: Database name
    database_name = None  # type: str
    #: Timezone for timestamps
    timezone = None  # type: str

    #: Put `created_at` and `updated_at` onto documents
    use_timestamps = None  # type: bool
    created_at = None  # type: str
    updated_at = None  # type: str

    #: Do not really delete documents, but flag them
    use_soft_delete = None  # type: bool
    is_deleted = None  # type: str
    deleted_at = None  # type: str

    #: Fields that are not loaded with relations (unless `make_visible`)
    hidden = ()
    #: Relations that are loaded with every query
    default_with = ()
    #: Default values for the fields of inserted documents
    attributes = {}

    # endregion

    #: All model classes, by name. Relations can refer to models by name.
    _models = {}  # type: Dict[str, type]

    #: Relations of this model: { name: @relation }
    _relations = {}  # type: Dict[str, relation]

    def __init_subclass__(cls, **kwargs):
        super(Model, cls).__init_subclass__(**kwargs)

        cls._relations = relation.all_decorators_from(cls)
        Model._models[cls.__name__] = cls

    # region Class API

    @classmethod
    def get_settings(cls) -> Settings:
        """ Get the settings for this model: environment defaults, overridden by class attributes """
        return Settings.from_env().and_more(
            collection=cls.collection or '{}s'.format(cls.__name__.lower()),
            **{name: getattr(cls, name) for name in SETTINGS_ATTRIBUTES}
        )

    @classmethod
    def query(cls, session=None) -> QueryBuilder:
        """ Start a new query

        :param session: pymongo ClientSession, e.g. for a transaction
        """
        return QueryBuilder(model=cls, session=session)

    @classmethod
    def without(cls, *relations) -> QueryBuilder:
        """ Start a new query that does not load these `default_with` relations """
        skip = set(flatten(relations))
        query = cls.query()
        query.default_relations = [name for name in query.default_relations
                                   if name.partition('.')[0] not in skip]
        return query

    @classmethod
    def with_only(cls, *relations) -> QueryBuilder:
        """ Start a new query that loads these relations instead of the `default_with` ones """
        query = cls.query()
        query.default_relations = flatten(relations)
        return query

    @classmethod
    def hydrate(cls, document: Mapping) -> 'Model':
        """ Make an instance from a document loaded from the database """
        instance = cls.__new__(cls)
        instance._tracker = ChangeTracker(document)
        instance._exists = True
        return instance

    @classmethod
    def relation_lookups(cls, alias: str, options=None, nested: Iterable[str] = ()) -> list:
        """ Generate the stages that load a relation

        :param alias: Name of the relation
        :param options: RelationOptions
        :param nested: Relations of the related model to load along
        :raises RelationNotFoundException
        """
        try:
            decorator = cls._relations[alias]
        except KeyError:
            raise RelationNotFoundException(cls.__name__, alias) from None

        query = decorator.method(cls())
        return query.descriptor.generate(alias, options, nested)

    # endregion

    def __init__(self, attributes: Mapping = None, **kwargs):
        """ Make a new document. It's not saved until you save() it. """
        self._tracker = ChangeTracker()
        self._exists = False
        self.fill(attributes, **kwargs)

    # region Fields

    def __getattr__(self, name):
        # Only called when there's no such attribute: look into the document
        if name.startswith('_'):
            raise AttributeError(name)
        try:
            return self._tracker.current()[name]
        except KeyError:
            raise AttributeError('{} has no field {!r}'.format(self.__class__.__name__, name)) from None

    def __getitem__(self, key: str):
        return self._tracker.current()[key]

    def __setitem__(self, key: str, value):
        self.set(key, value)

    def __contains__(self, key: str):
        return key in self._tracker.current()

    def get_attribute(self, key: str, default=None):
        """ Get a field value """
        return self._tracker.current().get(key, default)

    def get_key(self):
        """ Get the document id """
        return self.get_attribute('_id')

    def set(self, key: str, value) -> 'Model':
        """ Set a field value. The change is tracked. """
        self._tracker.set(key, value)
        return self

    def fill(self, attributes: Mapping = None, **kwargs) -> 'Model':
        """ Set many field values """
        for key, value in {**(attributes or {}), **kwargs}.items():
            self.set(key, value)
        return self

    def to_dict(self) -> dict:
        """ Get the document, with all the changes """
        return self._tracker.current()

    @property
    def exists(self) -> bool:
        """ Has it been loaded from (or saved into) the database? """
        return self._exists

    # endregion

    # region Change tracking

    def is_dirty(self, *fields) -> bool:
        return self._tracker.is_dirty(*fields)

    def is_clean(self, *fields) -> bool:
        return self._tracker.is_clean(*fields)

    def was_changed(self, *fields) -> bool:
        return self._tracker.was_changed(*fields)

    def get_changes(self) -> dict:
        return self._tracker.get_changes()

    def get_original(self, *fields) -> dict:
        return self._tracker.get_original(*fields)

    # endregion

    # region Persistence

    def _query(self, session=None, **overrides) -> QueryBuilder:
        """ A query for this model that does not load any relations """
        query = QueryBuilder(model=type(self), session=session, **overrides)
        query.default_relations = []
        return query

    def _document_query(self, session=None, **overrides) -> QueryBuilder:
        """ A query for this very document """
        if not self._exists:
            raise NotFoundException('{} has not been saved yet'.format(self.__class__.__name__))
        return self._query(session, **overrides).with_trashed().where('_id', self.get_key())

    def save(self, session=None) -> 'Model':
        """ Save the document: insert a new one, or update the changed fields of an existing one """
        if not self._exists:
            document = self._query(session).insert(self._tracker.current()).to_dict()
            self._exists = True
        elif not self._tracker.has_changes():
            self._tracker.sync()
            return self
        else:
            updated = self._document_query(session).update(self._tracker.get_changes())
            if updated is None:
                raise NotFoundException('{} with id {} does not exist anymore'.format(
                    self.__class__.__name__, self.get_key()))
            document = updated.to_dict()

        logger.debug('Saved %s %s', self.__class__.__name__, self.get_key())
        self._tracker.sync(document)
        return self

    def update(self, attributes: Mapping = None, session=None, **kwargs) -> 'Model':
        """ Set the fields, and save """
        return self.fill(attributes, **kwargs).save(session)

    def refresh(self, session=None) -> 'Model':
        """ Load the document again. Unsaved changes are lost. """
        document = self._document_query(session).first()
        if document is None:
            raise NotFoundException('{} with id {} does not exist anymore'.format(
                self.__class__.__name__, self.get_key()))
        self._tracker = ChangeTracker(document.to_dict())
        return self

    def delete(self, session=None) -> int:
        """ Delete the document. With soft delete, it's only flagged. """
        settings = type(self).get_settings()
        count = self._document_query(session).delete()

        if settings['use_soft_delete']:
            self.refresh(session)
        else:
            self._exists = False
        return count

    def force_delete(self, session=None) -> int:
        """ Delete the document for real, even with soft delete """
        count = self._document_query(session, use_soft_delete=False).delete()
        self._exists = False
        return count

    def restore(self, session=None) -> 'Model':
        """ Un-delete a soft-deleted document """
        self._document_query(session).restore()
        return self.refresh(session)

    # endregion

    # region Relations

    def has_one(self, related: Union[type, str], foreign_key: str = None, local_key: str = '_id') -> HasOne:
        """ One related document refers to this one

        :param related: Related model, or its name
        :param foreign_key: Field of the related document that refers to this one. Default: "<thismodel>Id"
        :param local_key: Field of this document that `foreign_key` refers to
        """
        return HasOne(HasOneRelation(self, resolve_model(related), foreign_key, local_key))

    def belongs_to(self, related: Union[type, str], foreign_key: str = None, owner_key: str = '_id') -> BelongsTo:
        """ This document refers to the related one

        :param related: Related model, or its name
        :param foreign_key: Field of this document that refers to the related one. Default: "<relatedmodel>Id"
        :param owner_key: Field of the related document that `foreign_key` refers to
        """
        return BelongsTo(BelongsToRelation(self, resolve_model(related), foreign_key, owner_key))

    def has_many(self, related: Union[type, str], foreign_key: str = None, local_key: str = '_id') -> HasMany:
        """ Many related documents refer to this one

        :param related: Related model, or its name
        :param foreign_key: Field of the related documents that refers to this one. Default: "<thismodel>Id"
        :param local_key: Field of this document that `foreign_key` refers to
        """
        return HasMany(HasManyRelation(self, resolve_model(related), foreign_key, local_key))

    def has_many_through(self, related: Union[type, str], through: Union[type, str],
                         foreign_key: str = None, foreign_key_through: str = None,
                         local_key: str = '_id', local_key_through: str = '_id') -> HasManyThrough:
        """ Many related documents, through an intermediate model

        :param related: Related model, or its name
        :param through: Intermediate model, or its name
        :param foreign_key: Field of the intermediate documents that refers to this one. Default: "<thismodel>Id"
        :param foreign_key_through: Field of the related documents that refers to the intermediate ones.
            Default: "<throughmodel>Id"
        :param local_key: Field of this document that `foreign_key` refers to
        :param local_key_through: Field of the intermediate documents that `foreign_key_through` refers to
        """
        return HasManyThrough(HasManyThroughRelation(
            self, resolve_model(related), resolve_model(through),
            foreign_key, foreign_key_through, local_key, local_key_through))

    def belongs_to_many(self, related: Union[type, str], pivot: Union[type, str] = None,
                        foreign_pivot_key: str = None, related_pivot_key: str = None,
                        parent_key: str = '_id', related_key: str = '_id') -> BelongsToMany:
        """ Many-to-many through a pivot collection

        :param related: Related model, or its name
        :param pivot: Pivot model, or the name of the pivot collection.
            Default: both model names, lower-cased, sorted, joined with "_"
        :param foreign_pivot_key: Field of the pivot that refers to this document. Default: "<thismodel>Id"
        :param related_pivot_key: Field of the pivot that refers to the related document. Default: "<relatedmodel>Id"
        :param parent_key: Field of this document that `foreign_pivot_key` refers to
        :param related_key: Field of the related document that `related_pivot_key` refers to
        """
        if isinstance(pivot, str) and pivot in Model._models:
            pivot = Model._models[pivot]
        return BelongsToMany(BelongsToManyRelation(
            self, resolve_model(related), pivot,
            foreign_pivot_key, related_pivot_key, parent_key, related_key))

    def morph_to(self, related: Union[type, str], name: str) -> MorphTo:
        """ Polymorphic one-to-one: the related document refers to this one by `<name>Id` and `<name>Type` """
        return MorphTo(MorphToRelation(self, resolve_model(related), name))

    def morph_many(self, related: Union[type, str], name: str) -> MorphMany:
        """ Polymorphic one-to-many: the related documents refer to this one by `<name>Id` and `<name>Type` """
        return MorphMany(MorphManyRelation(self, resolve_model(related), name))

    def morph_to_many(self, related: Union[type, str], name: str) -> MorphToMany:
        """ Polymorphic many-to-many through the `<name>s` pivot collection """
        return MorphToMany(MorphToManyRelation(self, resolve_model(related), name))

    def morphed_by_many(self, related: Union[type, str], name: str) -> MorphedByMany:
        """ The inverse of morph_to_many """
        return MorphedByMany(MorphedByManyRelation(self, resolve_model(related), name))

    # endregion

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.get_key())


def resolve_model(model: Union[type, str]) -> type:
    """ Get a model class, by the class itself or by its name

    :raises ConfigurationException: unknown model
    """
    if isinstance(model, type) and issubclass(model, Model):
        return model

    try:
        return Model._models[model]
    except (KeyError, TypeError):
        raise ConfigurationException('Unknown model: {!r}'.format(model)) from None


# region Query shortcuts

#: QueryBuilder methods that are available on the model class: User.where(...) is User.query().where(...)
QUERY_METHODS = (
    # conditions
    'where', 'or_where', 'where_not', 'or_where_not',
    'where_in', 'or_where_in', 'where_not_in', 'or_where_not_in',
    'where_between', 'or_where_between', 'where_null', 'or_where_null', 'where_not_null', 'or_where_not_null',
    'with_trashed', 'only_trashed',
    # projection, sorting, slicing
    'select', 'exclude', 'order_by', 'group_by', 'skip', 'offset', 'limit', 'take', 'raw', 'lookup', 'with_',
    # reads
    'get', 'all', 'first', 'first_or_fail', 'find', 'find_or_fail', 'pluck', 'paginate',
    'count', 'max', 'min', 'avg', 'sum',
    'first_or_create', 'first_or_new',
    # writes
    'insert', 'create', 'insert_many', 'create_many', 'update_or_create', 'update_or_insert',
    'destroy', 'force_destroy',
)


def _query_shortcut(name: str):
    def shortcut(cls, *args, **kwargs):
        return getattr(cls.query(), name)(*args, **kwargs)
    shortcut.__name__ = name
    shortcut.__doc__ = 'Shortcut for `query().{}()`'.format(name)
    return classmethod(shortcut)


for _name in QUERY_METHODS:
    setattr(Model, _name, _query_shortcut(_name))

# endregion
