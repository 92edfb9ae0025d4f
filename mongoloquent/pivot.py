"""
### Pivot collections
Many-to-many relations keep their links in a pivot collection: every pivot document links
one parent to one related document.

```python
user.roles().attach([role1_id, role2_id])  # insert the missing links, restore trashed ones
user.roles().detach(role1_id)              # remove the links
user.roles().sync([role2_id, role3_id])    # make the links exactly these
user.roles().toggle([role2_id, role4_id])  # remove the present ones, add the absent ones
```

Every operation reads the existing pivot documents of the parent, computes the difference,
and writes only what has to change. Running one twice changes nothing the second time.

This is not atomic: two concurrent syncs for the same parent may both insert a link.
Run them in a transaction, or put a unique index onto the pivot collection, if that matters.

Every operation returns a summary of the related ids that changed:

```python
{'attached': [...], 'detached': [...], 'updated': [...]}
```
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping

from bson import ObjectId

from .helpers import flatten, to_object_ids
from .query import QueryBuilder

logger = logging.getLogger(__name__)


class PivotSynchronizer:
    """ Attach, detach, sync and toggle links in a pivot collection

        The pivot documents of a parent are those that match `owner`: a dict of fields.
        For a belongsToMany, that's just the parent's id: {userId: ...};
        for a morph relation, that's the id and the type: {taggableId: ..., taggableType: 'Post'}.
    """

    def __init__(self, query: Callable[[], QueryBuilder], owner: Mapping, related_key: str):
        """ Init the synchronizer

        :param query: A callable that gives a fresh model-less query for the pivot collection
        :param owner: Fields that identify the pivot documents of the parent
        :param related_key: Field of the pivot documents that refers to the related document
        """
        self.query = query
        self.owner = dict(owner)
        self.related_key = related_key

        #: Settings of the pivot collection
        self.settings = query().settings

    # region Operations

    def attach(self, ids, attributes: Mapping = None) -> dict:
        """ Link related documents: insert the missing links, restore trashed ones

        :param ids: Related id, or a list of them
        :param attributes: Additional fields for the new pivot documents
        """
        ids = _unique_ids(ids)
        rows = self._load(ids)

        attached = self._insert([id for id in ids if id not in rows], attributes)
        attached += self._restore([rows[id] for id in ids if id in rows and self._is_trashed(rows[id])])
        return _summary(attached=attached)

    sync_without_detaching = attach

    def detach(self, ids=None) -> dict:
        """ Unlink related documents

        :param ids: Related id, or a list of them. Empty: unlink everything.
        """
        ids = _unique_ids(ids)
        rows = self._load(ids or None)
        return _summary(detached=self._delete([row for row in rows.values() if not self._is_trashed(row)]))

    def sync(self, ids, attributes: Mapping = None) -> dict:
        """ Make the links exactly these: link the missing, unlink the rest

        :param ids: Related id, or a list of them
        :param attributes: Additional fields for the new pivot documents
        """
        inserted, restored, detached = self._sync(_unique_ids(ids), attributes)
        return _summary(attached=inserted + restored, detached=detached)

    def sync_with_pivot_values(self, ids, attributes: Mapping) -> dict:
        """ sync(), and put the attributes onto the links that were not just inserted """
        ids = _unique_ids(ids)
        inserted, restored, detached = self._sync(ids, attributes)

        new = set(inserted)
        updated = [id for id in ids if id not in new]
        if updated and attributes:
            self._owner_query().where_in(self.related_key, updated).update_many(dict(attributes))
        else:
            updated = []
        return _summary(attached=inserted + restored, detached=detached, updated=updated)

    def _sync(self, ids: List[ObjectId], attributes: Mapping = None):
        """ Sync the links

        :return: (inserted ids, restored ids, detached ids)
        """
        rows = self._load(None)
        wanted = set(ids)

        inserted = self._insert([id for id in ids if id not in rows], attributes)
        restored = self._restore([rows[id] for id in ids if id in rows and self._is_trashed(rows[id])])
        detached = self._delete([row for id, row in rows.items()
                                 if id not in wanted and not self._is_trashed(row)])
        return inserted, restored, detached

    def toggle(self, ids) -> dict:
        """ Unlink the linked ones, link the rest """
        ids = _unique_ids(ids)
        rows = self._load(ids)

        present = [rows[id] for id in ids if id in rows and not self._is_trashed(rows[id])]
        attached = self._insert([id for id in ids if id not in rows])
        attached += self._restore([rows[id] for id in ids if id in rows and self._is_trashed(rows[id])])
        detached = self._delete(present)
        return _summary(attached=attached, detached=detached)

    # endregion

    # region Reads and writes

    def _owner_query(self) -> QueryBuilder:
        query = self.query()
        for column, value in self.owner.items():
            query.where(column, value)
        return query

    def _load(self, ids) -> Dict[ObjectId, dict]:
        """ Load pivot documents of the parent, trashed included

        :param ids: Related ids to load the pivot documents for; None: all of them
        :return: {related id: pivot document}
        """
        query = self._owner_query().with_trashed()
        if ids is not None:
            query.where_in(self.related_key, ids)

        rows = {}
        for row in query.get():
            rows.setdefault(row[self.related_key], row)
        return rows

    def _is_trashed(self, row: Mapping) -> bool:
        return bool(self.settings['use_soft_delete'] and row.get(self.settings['is_deleted']))

    def _insert(self, ids: List[ObjectId], attributes: Mapping = None) -> List[ObjectId]:
        if ids:
            logger.debug('Attaching %r to %r', ids, self.owner)
            self.query().insert_many([{**self.owner, self.related_key: id, **(attributes or {})}
                                      for id in ids])
        return list(ids)

    def _restore(self, rows: List[Mapping]) -> List[ObjectId]:
        if rows:
            self.query().where_in('_id', [row['_id'] for row in rows]).restore()
        return [row[self.related_key] for row in rows]

    def _delete(self, rows: List[Mapping]) -> List[ObjectId]:
        if rows:
            logger.debug('Detaching %r from %r', [row[self.related_key] for row in rows], self.owner)
            self.query().where_in('_id', [row['_id'] for row in rows]).delete()
        return [row[self.related_key] for row in rows]

    # endregion


def _unique_ids(ids) -> List[ObjectId]:
    """ Coerce ids into a list of ObjectIds, without duplicates, keeping the order """
    if isinstance(ids, (list, tuple, set, frozenset)):
        ids = flatten(ids)
    return list(dict.fromkeys(to_object_ids(ids)))


def _summary(attached: Iterable = (), detached: Iterable = (), updated: Iterable = ()) -> dict:
    return {
        'attached': list(attached),
        'detached': list(detached),
        'updated': list(updated),
    }
