""" Small pure helpers: timestamps, soft-delete fields, id coercion """

from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Mapping

from bson import ObjectId
from bson.errors import InvalidId

from .exc import InvalidArgumentException


def now(tz: str = None) -> datetime:
    """ Current time, in the given timezone

    :param tz: Timezone name, e.g. "Asia/Jakarta". Default: UTC
    """
    if not tz or tz == 'UTC':
        return datetime.now(dt_timezone.utc)

    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
    try:
        return datetime.now(ZoneInfo(tz))
    except ZoneInfoNotFoundError as e:
        raise InvalidArgumentException('Unknown timezone "{}"'.format(tz), e) from e


def timestamps(enabled: bool, doc: Mapping, is_new: bool = True, *,
               created_at: str = 'createdAt', updated_at: str = 'updatedAt',
               tz: str = None) -> dict:
    """ Put timestamps onto a document

    New documents get both `created_at` and `updated_at`; old ones only get `updated_at`.

    :param enabled: Are timestamps enabled? If not, the document is returned as is (copied)
    :param doc: The document
    :param is_new: Is it an insert?
    :return: A new document
    """
    doc = dict(doc)
    if not enabled:
        return doc

    ts = now(tz)
    if is_new:
        doc[created_at] = ts
    doc[updated_at] = ts
    return doc


def soft_delete(enabled: bool, doc: Mapping, deleted: bool = False, *,
                is_deleted: str = 'isDeleted', deleted_at: str = 'deletedAt',
                tz: str = None) -> dict:
    """ Put soft-delete fields onto a document

    :param enabled: Is soft-delete enabled? If not, the document is returned as is (copied)
    :param doc: The document
    :param deleted: Flag the document as deleted (and put the deletion time)?
        If not, it just gets `is_deleted=False`
    :return: A new document
    """
    doc = dict(doc)
    if not enabled:
        return doc

    if deleted:
        doc[is_deleted] = True
        doc[deleted_at] = now(tz)
    else:
        doc[is_deleted] = False
    return doc


def to_object_id(value) -> ObjectId:
    """ Coerce a value to an ObjectId

    :raises InvalidArgumentException: not an id
    """
    if isinstance(value, ObjectId):
        return value
    # ObjectId(None) would make a new id
    if value is None:
        raise InvalidArgumentException('Invalid id: None')
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as e:
        raise InvalidArgumentException('Invalid id: {!r}'.format(value), e) from e


def to_object_id_lenient(value):
    """ Coerce a value to an ObjectId, if it looks like one. Leave it alone otherwise.

    Conditions on `_id` use this: a collection may use custom ids.
    """
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def flatten(values: Iterable) -> list:
    """ Flatten one level of lists: f('a', ['b', 'c']) -> ['a', 'b', 'c'] """
    flat = []
    for value in values:
        if isinstance(value, (list, tuple, set, frozenset)):
            flat.extend(value)
        else:
            flat.append(value)
    return flat


def to_object_ids(ids) -> list:
    """ Coerce a single id, or a list of ids, into a list of ObjectIds

    `None` gives an empty list.
    """
    if ids is None:
        return []
    if not isinstance(ids, (list, tuple, set, frozenset)):
        ids = [ids]
    return [to_object_id(id) for id in ids]
