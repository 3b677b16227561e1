""" A document store on top of Google Cloud Firestore

Requires the `firestore` extra:

    pip install docquery[firestore]

Example:

    from google.cloud import firestore

    source = FirestoreDocumentSource(firestore.Client(project='my-project'))
"""

from typing import List

from google.cloud.firestore_v1.base_query import FieldFilter

from .source import DocumentSource


class FirestoreDocumentSource(DocumentSource):
    """ Documents from Firestore collections """

    #: Firestore supports at most this many values in an `in` query
    IN_QUERY_MAX_VALUES = 30

    def __init__(self, client):
        """ Init the store

        :param client: Firestore client
        :type client: google.cloud.firestore.Client
        """
        self.client = client

    def scan(self, collection):
        return self._load(self.client.collection(collection).stream())

    def get(self, collection, id):
        snapshot = self.client.collection(collection).document(id).get()
        if not snapshot.exists:
            return None
        return self._make_doc(snapshot)

    def get_many(self, collection, ids):
        if not ids:
            return []
        refs = [self.client.collection(collection).document(id) for id in ids]
        return self._load(self.client.get_all(refs))

    def query_equal(self, collection, field, value):
        query = self.client.collection(collection).where(filter=FieldFilter(field, '==', value))
        return self._load(query.stream())

    def query_in(self, collection, field, values):
        values = list(values)
        docs = []
        for i in range(0, len(values), self.IN_QUERY_MAX_VALUES):
            chunk = values[i:i + self.IN_QUERY_MAX_VALUES]
            query = self.client.collection(collection).where(filter=FieldFilter(field, 'in', chunk))
            docs.extend(self._load(query.stream()))
        return docs

    def _load(self, snapshots) -> List[dict]:
        return [self._make_doc(snapshot)
                for snapshot in snapshots
                if snapshot.exists]

    @staticmethod
    def _make_doc(snapshot) -> dict:
        return {'id': snapshot.id, **(snapshot.to_dict() or {})}

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, getattr(self.client, 'project', None))
