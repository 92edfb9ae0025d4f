""" Explicit change tracking for model instances """

from copy import deepcopy
from typing import Mapping

from .helpers import flatten


class ChangeTracker:
    """ Keeps track of what has changed in a document since it was loaded.

    There's no magic here: nothing intercepts attribute assignment.
    Changes are only recorded when they go through set(), which is the designated setter.

    * `original` is the document as it was loaded (or last saved)
    * `changes` is the set of fields modified since then, with their new values

    Example:

        tracker = ChangeTracker({'name': 'John', 'age': 18})
        tracker.set('age', 19)
        tracker.is_dirty('age')  # -> True
        tracker.get_changes()  # -> {'age': 19}
        tracker.get_original('age')  # -> {'age': 18}
    """

    def __init__(self, original: Mapping = None):
        #: The document as it was loaded
        self.original = deepcopy(dict(original or {}))
        #: Fields that were changed since, with their new values
        self.changes = {}
        #: Fields that were changed by the last sync()
        self.last_changed = {}

    def set(self, field: str, value):
        """ Record a new value for a field

        Setting a field back to its original value un-dirties it.
        """
        if field in self.original and self.original[field] == value:
            self.changes.pop(field, None)
        else:
            self.changes[field] = value

    def current(self) -> dict:
        """ The document with all the changes applied """
        return {**self.original, **self.changes}

    def sync(self, document: Mapping = None):
        """ Mark the changes as persisted

        :param document: The new original document; default: the current one
        """
        self.last_changed = dict(self.changes)
        self.original = deepcopy(dict(document if document is not None else self.current()))
        self.changes = {}

    def discard(self):
        """ Forget about the changes """
        self.changes = {}

    def has_changes(self) -> bool:
        return bool(self.changes)

    def is_dirty(self, *fields) -> bool:
        """ Have any of the given fields been changed? No fields: has anything been changed? """
        fields = flatten(fields)
        if not fields:
            return self.has_changes()
        return any(field in self.changes for field in fields)

    def is_clean(self, *fields) -> bool:
        """ Have all the given fields remained unchanged? """
        fields = flatten(fields)
        if not fields:
            return not self.has_changes()
        return all(field not in self.changes for field in fields)

    def was_changed(self, *fields) -> bool:
        """ Did the last save change any of the given fields? """
        fields = flatten(fields)
        if not fields:
            return bool(self.last_changed)
        return any(field in self.last_changed for field in fields)

    def get_changes(self) -> dict:
        return dict(self.changes)

    def get_original(self, *fields) -> dict:
        """ Get original values: for all fields, or for the given ones """
        fields = flatten(fields)
        if not fields:
            return dict(self.original)
        return {field: self.original[field] for field in fields if field in self.original}

    def __repr__(self):
        return '{}(changes={!r})'.format(self.__class__.__name__, self.changes)
