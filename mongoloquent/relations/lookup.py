""" Pipeline stages shared by relation kinds

Every relation ends up as a `$lookup` (or two), with a sub-pipeline that filters and slices
the related documents, and a few stages that project the loaded field.
"""

from typing import Dict, Iterable, List

from ..helpers import flatten


def soft_delete_conditions(related) -> List[dict]:
    """ `$expr` conditions that hide soft-deleted related documents

    :type related: mongoloquent.model.Model
    """
    return soft_delete_conditions_for(related.get_settings())


def soft_delete_conditions_for(settings) -> List[dict]:
    """ `$expr` conditions that hide soft-deleted documents of a collection with these settings

    :type settings: mongoloquent.settings.Settings
    """
    if not settings['use_soft_delete']:
        return []
    return [{'$eq': ['${}'.format(settings['is_deleted']), False]}]


def match_expr(conditions: List[dict]) -> List[dict]:
    """ A `$match` stage with `$expr` conditions; nothing when there are none """
    if not conditions:
        return []
    return [{'$match': {'$expr': {'$and': conditions}}}]


def slice_stages(options: dict) -> List[dict]:
    """ `$sort`, `$skip`, `$limit` for the sub-pipeline of a plural relation """
    stages = []
    if options['sort']:
        column, direction = options['sort']
        stages.append({'$sort': {column: direction}})
    if options['skip']:
        stages.append({'$skip': options['skip']})
    if options['limit']:
        stages.append({'$limit': options['limit']})
    return stages


def select_stages(columns: Iterable[str], alias: str) -> List[dict]:
    """ Only keep these fields of the related documents

    `$project` can't include the fields of a sub-document without dropping the rest of the document,
    so the document is stashed, and the projected field is put back into it.
    """
    project = {'document': '$$ROOT'}
    for column in columns:
        project['{}.{}'.format(alias, column)] = 1

    return [
        {'$project': project},
        {'$set': {'document.{}'.format(alias): '${}'.format(alias)}},
        {'$replaceRoot': {'newRoot': '$document'}},
    ]


def exclude_stages(columns: Iterable[str], alias: str) -> List[dict]:
    """ Drop these fields from the related documents """
    return [{'$project': {'{}.{}'.format(alias, column): 0 for column in columns}}]


def unwind_stage(alias: str) -> dict:
    """ Turn a one-element array into an object. No match: the field is absent. """
    return {'$unwind': {'path': '${}'.format(alias), 'preserveNullAndEmptyArrays': True}}


def projection_stages(related, alias: str, options: dict) -> List[dict]:
    """ select() and exclude() for the related documents

    Hidden fields of the related model are always excluded, unless made visible.
    """
    stages = []

    if options['select']:
        stages.extend(select_stages(options['select'], alias))

    visible = set(options['make_visible'])
    hidden = [column for column in flatten((related.hidden, options['exclude']))
              if column not in visible]
    if hidden:
        stages.extend(exclude_stages(dict.fromkeys(hidden), alias))

    return stages


def nested_lookups(related, nested: Iterable[str]) -> List[dict]:
    """ Lookups for relations of the related model: 'comments', 'comments.author' """
    groups = {}  # type: Dict[str, List[str]]
    for name in nested:
        alias, _, rest = name.partition('.')
        groups.setdefault(alias, [])
        if rest:
            groups[alias].append(rest)

    stages = []
    for alias, rest in groups.items():
        stages.extend(related.relation_lookups(alias, None, rest))
    return stages
