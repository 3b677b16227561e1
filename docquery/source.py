""" Document stores

DocQuery does not query the store: it loads a whole collection, and does the rest in memory.
What it needs from a store is only a handful of primitive operations:

* `scan()`: load a whole collection
* `get()`: load one document by id
* `get_many()`: load documents by a list of ids (used for forward population)
* `query_equal()`, `query_in()`: load documents by the value of a field (used for reverse population)

Every document comes with its store key merged into it as `id`.
Documents are always copies: modifying them never changes the store.
"""

from copy import deepcopy
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .path import get_path, MISSING


class DocumentSource:
    """ A document store that DocQuery can load documents from

        Subclasses implement scan() and get(). The rest have generic implementations that subclasses
        are encouraged to override with something that the store can do natively.
    """

    def scan(self, collection: str) -> List[dict]:
        """ Load all documents of a collection. An unknown collection is empty. """
        raise NotImplementedError()

    def get(self, collection: str, id: str) -> Optional[dict]:
        """ Load a document by id. Returns None when there's no such document. """
        raise NotImplementedError()

    def get_many(self, collection: str, ids: Sequence[str]) -> List[dict]:
        """ Load documents by their ids. Missing documents are skipped. """
        docs = (self.get(collection, id) for id in ids)
        return [doc for doc in docs if doc is not None]

    def query_equal(self, collection: str, field: str, value: Any) -> List[dict]:
        """ Load documents where `field` equals `value` """
        return [doc
                for doc in self.scan(collection)
                if get_path(doc, field) == value]

    def query_in(self, collection: str, field: str, values: Sequence[Any]) -> List[dict]:
        """ Load documents where `field` equals any of the `values`.

            Only scalar fields match: an array field never equals a value.
        """
        values = list(values)
        ret = []
        for doc in self.scan(collection):
            value = get_path(doc, field)
            if _is_scalar(value) and value in values:
                ret.append(doc)
        return ret

    def __repr__(self):
        return '{}()'.format(self.__class__.__name__)


def _is_scalar(value) -> bool:
    return value is not MISSING and value is not None and not isinstance(value, (list, tuple, Mapping))


class MemoryDocumentSource(DocumentSource):
    """ A document store that keeps collections in memory

        Used for tests, fixtures, and for data that's already been loaded from somewhere else.

        Example:

            source = MemoryDocumentSource({
                'users': [
                    {'id': 'u1', 'name': 'Alice'},
                ],
                'services': {
                    's1': {'title': 'Haircut', 'vendorId': 'u1'},
                },
            })
    """

    def __init__(self, collections: Mapping[str, Union[Iterable[dict], Mapping[str, dict]]] = None):
        #: Collections: { collection name: { id: document data } }
        self.collections = {}

        for collection, docs in (collections or {}).items():
            self.insert_many(collection, docs)

    def insert(self, collection: str, doc: dict, id: str = None):
        """ Add a document to a collection (or replace it)

        :param doc: Document data. Can contain its `id`
        :param id: Document id, if it's not in the `doc`
        """
        doc = dict(doc)
        id = id or doc.pop('id', None)
        doc.pop('id', None)
        assert id, 'Every document must have an id'

        self.collections.setdefault(collection, {})[str(id)] = deepcopy(doc)
        return self

    def insert_many(self, collection: str, docs: Union[Iterable[dict], Mapping[str, dict]]):
        """ Add many documents: a list of documents with ids, or a mapping { id: document } """
        self.collections.setdefault(collection, {})

        if isinstance(docs, Mapping):
            for id, doc in docs.items():
                self.insert(collection, doc, id=id)
        else:
            for doc in docs:
                self.insert(collection, doc)
        return self

    def scan(self, collection):
        return [self._make_doc(id, data)
                for id, data in self.collections.get(collection, {}).items()]

    def get(self, collection, id):
        data = self.collections.get(collection, {}).get(id)
        if data is None:
            return None
        return self._make_doc(id, data)

    @staticmethod
    def _make_doc(id: str, data: dict) -> dict:
        return {'id': id, **deepcopy(data)}

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__, ', '.join(sorted(self.collections)))
