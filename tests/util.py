""" Test helpers: an in-memory stand-in for a pymongo client """

from copy import deepcopy
from types import SimpleNamespace
from typing import List

from bson import ObjectId
from pymongo import ReturnDocument

from mongoloquent.connection import Database


class FakeCollection:
    """ A tiny in-memory collection

        Supports just enough of pymongo for the unit tests:
        filters with $and, $or, $eq, $ne, $in, $nin, $gt(e), $lt(e);
        pipelines of $match, $project, $sort, $skip, $limit, $count.
    """

    def __init__(self, name: str):
        self.name = name
        self.documents = []  # type: List[dict]
        #: Log of every call: [(method name, args)]
        self.calls = []

    # region Reads

    def find(self, filter: dict = None, session=None):
        self.calls.append(('find', filter))
        return [deepcopy(doc) for doc in self.documents if matches(doc, filter or {})]

    def aggregate(self, pipeline: List[dict], session=None):
        self.calls.append(('aggregate', pipeline))
        documents = [deepcopy(doc) for doc in self.documents]

        for stage in pipeline:
            (name, arg), = stage.items()
            if name == '$match':
                documents = [doc for doc in documents if matches(doc, arg)]
            elif name == '$sort':
                for column, direction in reversed(list(arg.items())):
                    documents.sort(key=lambda doc: doc.get(column), reverse=direction < 0)
            elif name == '$skip':
                documents = documents[arg:]
            elif name == '$limit':
                documents = documents[:arg]
            elif name == '$project':
                documents = [_project(doc, arg) for doc in documents]
            elif name == '$count':
                documents = [{arg: len(documents)}] if documents else []
            else:
                raise NotImplementedError(name)

        return iter(documents)

    # endregion

    # region Writes

    def insert_one(self, document: dict, session=None):
        self.calls.append(('insert_one', document))
        document.setdefault('_id', ObjectId())
        self.documents.append(deepcopy(document))
        return SimpleNamespace(inserted_id=document['_id'], acknowledged=True)

    def insert_many(self, documents: List[dict], session=None):
        self.calls.append(('insert_many', documents))
        for document in documents:
            document.setdefault('_id', ObjectId())
            self.documents.append(deepcopy(document))
        return SimpleNamespace(inserted_ids=[doc['_id'] for doc in documents], acknowledged=True)

    def update_many(self, filter: dict, update: dict, session=None):
        self.calls.append(('update_many', filter, update))
        count = 0
        for doc in self.documents:
            if matches(doc, filter):
                doc.update(update['$set'])
                count += 1
        return SimpleNamespace(matched_count=count, modified_count=count, acknowledged=True)

    def find_one_and_update(self, filter: dict, update: dict, return_document=ReturnDocument.BEFORE, session=None):
        self.calls.append(('find_one_and_update', filter, update))
        for doc in self.documents:
            if matches(doc, filter):
                before = deepcopy(doc)
                doc.update(update['$set'])
                return deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        return None

    def delete_many(self, filter: dict, session=None):
        self.calls.append(('delete_many', filter))
        keep = [doc for doc in self.documents if not matches(doc, filter)]
        count = len(self.documents) - len(keep)
        self.documents = keep
        return SimpleNamespace(deleted_count=count, acknowledged=True)

    # endregion

    def calls_to(self, method: str) -> list:
        """ Get the calls to a method """
        return [call[1:] for call in self.calls if call[0] == method]


class FakeDatabase(dict):
    def __missing__(self, name):
        self[name] = collection = FakeCollection(name)
        return collection


class FakeClient(dict):
    """ client[db][collection] """

    def __missing__(self, name):
        self[name] = db = FakeDatabase()
        return db

    def close(self):
        pass


def install_fake_client(connection: str) -> FakeClient:
    """ Register a new fake client for the connection string """
    client = FakeClient()
    Database.set_client(connection, client)
    return client


# region Matching

def matches(doc: dict, filter: dict) -> bool:
    """ Does the document match the filter? """
    for key, condition in filter.items():
        if key == '$and':
            if not all(matches(doc, f) for f in condition):
                return False
        elif key == '$or':
            if not any(matches(doc, f) for f in condition):
                return False
        elif not _matches_condition(_get(doc, key), condition):
            return False
    return True


def _project(doc: dict, projection: dict) -> dict:
    """ Plain inclusion or exclusion of top-level fields """
    if any(projection.values()):
        return {k: v for k, v in doc.items() if k == '_id' or projection.get(k)}
    return {k: v for k, v in doc.items() if k not in projection}


def _get(doc: dict, key: str):
    for part in key.split('.'):
        if not isinstance(doc, dict):
            return None
        doc = doc.get(part)
    return doc


def _matches_condition(value, condition) -> bool:
    if not (isinstance(condition, dict) and condition and all(k.startswith('$') for k in condition)):
        return value == condition

    for op, arg in condition.items():
        if op == '$eq':
            ok = value == arg
        elif op == '$ne':
            ok = value != arg
        elif op == '$in':
            ok = value in arg
        elif op == '$nin':
            ok = value not in arg
        elif op == '$gt':
            ok = value is not None and value > arg
        elif op == '$gte':
            ok = value is not None and value >= arg
        elif op == '$lt':
            ok = value is not None and value < arg
        elif op == '$lte':
            ok = value is not None and value <= arg
        else:
            raise NotImplementedError(op)
        if not ok:
            return False
    return True

# endregion
