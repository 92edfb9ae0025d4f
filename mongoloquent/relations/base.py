from typing import Iterable, List, Mapping

from ..exc import InvalidArgumentException
from ..handlers.limit import validate_slice_value
from ..handlers.sort import parse_direction
from ..query import QueryBuilder
from ..settings import Settings
from . import lookup


class RelationOptions(dict):
    """ Options for loading a single relation with with_()

        User.with_('posts', {'select': ['title'], 'sort': ('createdAt', 'desc'), 'limit': 5})
    """

    def __init__(self,
                 select: Iterable[str] = None,
                 exclude: Iterable[str] = None,
                 sort=None,
                 skip: int = None,
                 limit: int = None,
                 make_visible: Iterable[str] = None,
                 ):
        """ Init the options

        :param select: Fields of the related documents to load
        :param exclude: Fields of the related documents not to load
        :param sort: (column, 'asc' | 'desc'), or just a column. Plural relations only.
        :param skip: Skip that many related documents. Plural relations only.
        :param limit: Load at most that many related documents. Plural relations only.
        :param make_visible: Hidden fields of the related model to load anyway
        """
        if isinstance(sort, str):
            sort = (sort, 'asc')
        if sort is not None:
            try:
                column, direction = sort
            except (TypeError, ValueError) as e:
                raise InvalidArgumentException('Invalid relation sort: {!r}'.format(sort), e) from e
            sort = (column, parse_direction(direction))

        super(RelationOptions, self).__init__(
            select=_as_list(select),
            exclude=_as_list(exclude),
            sort=sort,
            skip=validate_slice_value('skip', skip),
            limit=validate_slice_value('limit', limit),
            make_visible=_as_list(make_visible),
        )

    @classmethod
    def coerce(cls, options) -> 'RelationOptions':
        """ Get RelationOptions from None, a dict, or RelationOptions """
        if options is None:
            return cls()
        elif isinstance(options, RelationOptions):
            return options
        elif isinstance(options, Mapping):
            try:
                return cls(**options)
            except TypeError as e:
                raise InvalidArgumentException('Invalid relation options: {!r}'.format(options), e) from e
        raise InvalidArgumentException('Relation options must be a dict, got {!r}'.format(options))


def _as_list(value) -> List[str]:
    if value is None:
        return []
    elif isinstance(value, str):
        return [value]
    return list(value)


class RelationDescriptor:
    """ What a relation is: the models, and the keys that connect them

        A descriptor knows how to generate lookup stages for the relation.
        Subclasses implement the particular relation kind.
    """

    #: Is it a plural relation? Those support sort, skip and limit
    many = False

    def __init__(self, parent, related: type):
        """
        :param parent: The model instance the relation is declared on.
            For with_(), it's a blank instance: only its type is used.
        :type parent: mongoloquent.model.Model
        :param related: The related model class
        """
        self.parent = parent
        self.related = related

    @property
    def parent_class(self) -> type:
        return type(self.parent)

    @property
    def parent_name(self) -> str:
        """ The name of the declaring model. Morph types use it. """
        return self.parent_class.__name__

    @property
    def related_collection(self) -> str:
        return self.related.get_settings()['collection']

    def parent_value(self, key: str):
        """ Get a value from the parent document

        :raises InvalidArgumentException: the parent has no such value, e.g. it's not saved yet
        """
        value = self.parent.get_attribute(key)
        # where(key, None) would match every document that refers to nothing
        if value is None:
            raise InvalidArgumentException('{!r}: the parent has no `{}`; save it first'.format(self, key))
        return value

    def filter_conditions(self) -> List[dict]:
        """ `$expr` conditions for the related documents """
        return lookup.soft_delete_conditions(self.related)

    def generate(self, alias: str, options=None, nested: Iterable[str] = ()) -> List[dict]:
        """ Generate the pipeline stages that load this relation into the `alias` field

        :param alias: Field to put the related documents into
        :param options: RelationOptions
        :param nested: Relations of the related model to load along, possibly dotted
        :return: Pipeline stages
        """
        options = RelationOptions.coerce(options)

        pipeline = lookup.match_expr(self.filter_conditions())
        if self.many:
            pipeline.extend(lookup.slice_stages(options))
        pipeline.extend(lookup.nested_lookups(self.related, nested))

        stages = self.lookup_stages(alias, pipeline)
        stages.extend(lookup.projection_stages(self.related, alias, options))
        return stages

    def lookup_stages(self, alias: str, pipeline: List[dict]) -> List[dict]:
        """ The $lookup stage(s) of this relation kind

        :param alias: Field to put the related documents into
        :param pipeline: Sub-pipeline for the related documents
        """
        raise NotImplementedError

    def __repr__(self):
        return '{}({} -> {})'.format(self.__class__.__name__, self.parent_name, self.related.__name__)


def lookup_stage(from_: str, local_field: str, foreign_field: str, alias: str, pipeline: List[dict] = None) -> dict:
    """ Make a $lookup stage. An empty sub-pipeline is left out. """
    stage = {
        'from': from_,
        'localField': local_field,
        'foreignField': foreign_field,
        'as': alias,
    }
    if pipeline:
        stage['pipeline'] = pipeline
    return {'$lookup': stage}


class RelationQuery(QueryBuilder):
    """ A query for the related documents of a loaded model

        user.posts().where('published', True).get()

        Before every query, it adds the conditions that limit it to the documents related to the parent.
    """

    def __init__(self, descriptor: RelationDescriptor, session=None):
        #: The relation
        self.descriptor = descriptor

        super(RelationQuery, self).__init__(model=descriptor.related, session=session)

    @property
    def parent(self):
        """ The model instance this relation is for """
        return self.descriptor.parent

    def apply_defaults(self):
        super(RelationQuery, self).apply_defaults()
        self.relation_conditions()

    def relation_conditions(self):
        """ Add the conditions that limit the query to the related documents """
        raise NotImplementedError

    def related_query(self, settings: Settings, **overrides) -> QueryBuilder:
        """ A model-less query for another collection (pivot, through), in this session """
        return QueryBuilder(settings=settings, session=self.session, **overrides)

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.descriptor)


class CreatesRelated:
    """ Mixin for plural relations that can make new related documents: hasMany, morphMany

        The related documents get the attributes that link them to the parent.
    """

    def link_attributes(self) -> dict:
        """ The attributes that link a related document to the parent """
        raise NotImplementedError

    def save(self, model):
        """ Link a related model to the parent and save it """
        model.fill(self.link_attributes())
        return model.save()

    def save_many(self, models: Iterable) -> list:
        return [self.save(model) for model in models]

    def create(self, doc: Mapping):
        """ Insert a related document """
        return self.insert({**doc, **self.link_attributes()})

    def create_many(self, docs: Iterable[Mapping]) -> list:
        """ Insert related documents

        :return: Inserted ids
        """
        link = self.link_attributes()
        return self.insert_many([{**doc, **link} for doc in docs])

    def first_or_create(self, filter: Mapping, doc: Mapping = None):
        return super(CreatesRelated, self).first_or_create({**filter, **self.link_attributes()}, doc)

    def first_or_new(self, filter: Mapping, doc: Mapping = None):
        return super(CreatesRelated, self).first_or_new({**filter, **self.link_attributes()}, doc)

    def update_or_create(self, filter: Mapping, doc: Mapping = None):
        return super(CreatesRelated, self).update_or_create({**filter, **self.link_attributes()}, doc)

    update_or_insert = update_or_create


class SyncsPivot:
    """ Mixin for many-to-many relations: link operations on the pivot collection

        See mongoloquent.pivot.PivotSynchronizer
    """

    def pivot(self):
        """ Get the synchronizer for the pivot documents of the parent

        :rtype: mongoloquent.pivot.PivotSynchronizer
        """
        raise NotImplementedError

    def attach(self, ids, attributes: Mapping = None) -> dict:
        return self.pivot().attach(ids, attributes)

    def detach(self, ids=None) -> dict:
        return self.pivot().detach(ids)

    def sync(self, ids, attributes: Mapping = None) -> dict:
        return self.pivot().sync(ids, attributes)

    def sync_without_detaching(self, ids, attributes: Mapping = None) -> dict:
        return self.pivot().sync_without_detaching(ids, attributes)

    def sync_with_pivot_values(self, ids, attributes: Mapping) -> dict:
        return self.pivot().sync_with_pivot_values(ids, attributes)

    def toggle(self, ids) -> dict:
        return self.pivot().toggle(ids)
