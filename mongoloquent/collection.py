""" A list of documents with a few convenience methods """

from typing import Callable, Hashable, Mapping

from .exc import ItemNotFoundException, MultipleItemsFoundException


def _get(item, key, default=None):
    """ Get a key from a document, or a Model instance. Dotted keys go deeper. """
    for part in key.split('.'):
        if isinstance(item, Mapping):
            item = item.get(part, default)
        elif hasattr(item, 'get_attribute'):
            item = item.get_attribute(part, default)
        else:
            return default
    return item


class Collection(list):
    """ A list of documents, as returned by get()

        It's just a list, so everything you do with lists works.
        Plus, some helpers for the common things.
    """

    def first(self, predicate: Callable = None, default=None):
        """ Get the first item (that matches the predicate), or `default` """
        for item in self:
            if predicate is None or predicate(item):
                return item
        return default

    def first_or_fail(self, predicate: Callable = None):
        """ Get the first item (that matches the predicate)

        :raises ItemNotFoundException
        """
        for item in self:
            if predicate is None or predicate(item):
                return item
        raise ItemNotFoundException('Item not found')

    def sole(self, predicate: Callable = None):
        """ Get the only item (that matches the predicate)

        :raises ItemNotFoundException: no items
        :raises MultipleItemsFoundException: more than one
        """
        items = [item for item in self if predicate is None or predicate(item)]
        if not items:
            raise ItemNotFoundException('Item not found')
        if len(items) > 1:
            raise MultipleItemsFoundException(len(items))
        return items[0]

    def last(self, predicate: Callable = None, default=None):
        """ Get the last item (that matches the predicate), or `default` """
        for item in reversed(self):
            if predicate is None or predicate(item):
                return item
        return default

    def pluck(self, *keys) -> 'Collection':
        """ Get the values of a key from every document

        With one key, gives a list of values.
        With many keys, gives a list of dicts with just these keys.
        """
        if len(keys) == 1:
            return Collection(_get(item, keys[0]) for item in self)
        return Collection({key: _get(item, key) for key in keys} for item in self)

    def group_by(self, key) -> dict:
        """ Group documents by a key (or a callable) into a dict of Collections """
        groups = {}
        for item in self:
            value = key(item) if callable(key) else _get(item, key)
            if not isinstance(value, Hashable):
                value = str(value)
            groups.setdefault(value, Collection()).append(item)
        return groups

    def chunk(self, size: int) -> 'Collection':
        """ Split into chunks of `size` """
        assert size > 0
        return Collection(Collection(self[i:i + size]) for i in range(0, len(self), size))

    def for_page(self, page: int, per_page: int) -> 'Collection':
        """ Get the items for a page (1-based) """
        start = max(page - 1, 0) * per_page
        return Collection(self[start:start + per_page])

    def is_empty(self) -> bool:
        return len(self) == 0

    def is_not_empty(self) -> bool:
        return len(self) > 0
