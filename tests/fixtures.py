""" Sample documents for tests: a services marketplace """

from copy import deepcopy

from docquery import MemoryDocumentSource
from docquery.path import get_path


USERS = [
    {'id': 'u1', 'name': 'Alice', 'role': 'provider', 'rating': 4.5,
     'description': 'Hair salon in the heart of Paris',
     'tags': ['hair', 'spa'],
     'address': {'city': 'Paris', 'latitude': 48.8566, 'longitude': 2.3522},
     'workingDays': [{'name': 'Lundi', 'isOpen': True}, {'name': 'Samedi', 'isOpen': False}],
     'createdAt': {'_seconds': 1700000000, '_nanoseconds': 0}},
    {'id': 'u2', 'name': 'Bob', 'role': 'client', 'rating': 3,
     'description': 'Relaxing massage',
     'tags': ['massage'],
     'address': {'city': 'Lyon', 'latitude': 45.764, 'longitude': 4.8357},
     'workingDays': [{'name': 'Lundi', 'isOpen': False}],
     'createdAt': {'_seconds': 1700100000, '_nanoseconds': 0}},
    {'id': 'u3', 'name': 'Chloé', 'role': 'provider', 'rating': 5,
     'description': 'Nail salon',
     'tags': [],
     'address': {'city': 'Paris', 'latitude': 48.8606, 'longitude': 2.3376},
     'workingDays': [{'name': 'Samedi', 'isOpen': True}],
     'createdAt': {'_seconds': 1700200000, '_nanoseconds': 0}},
    {'id': 'u4', 'name': 'David', 'role': 'provider',
     'description': 'Barber',
     'address': {'city': 'Marseille'},
     'createdAt': {'_seconds': 1699900000, '_nanoseconds': 0}},
]

SERVICES = [
    {'id': 's1', 'title': 'Haircut', 'vendorId': 'u1', 'price': 30, 'categoryIds': ['c1']},
    {'id': 's2', 'title': 'Coloring', 'vendorId': 'u1', 'price': 80, 'categoryIds': ['c1', 'c2']},
    {'id': 's3', 'title': 'Manicure', 'vendorId': 'u3', 'price': 25},
    {'id': 's4', 'title': 'Group session', 'vendorIds': ['u1', 'u3'], 'price': 50},
]

CATEGORIES = [
    {'id': 'c1', 'name': 'Hair'},
    {'id': 'c2', 'name': 'Color'},
]


def make_source(**collections) -> MemoryDocumentSource:
    """ A store with sample collections. Keyword arguments add or replace collections. """
    return MemoryDocumentSource({
        'users': deepcopy(USERS),
        'services': deepcopy(SERVICES),
        'categories': deepcopy(CATEGORIES),
        **collections,
    })


def ids(documents):
    """ Get the list of ids """
    return [doc['id'] for doc in documents]


class FailingSource(MemoryDocumentSource):
    """ A store that fails to load some collections """

    def __init__(self, collections=None, failing=(), failing_scan=()):
        super(FailingSource, self).__init__(collections)
        #: Collections that fail on every lookup
        self.failing = set(failing)
        #: Collections that only fail on scan()
        self.failing_scan = set(failing_scan)

    def scan(self, collection):
        if collection in self.failing or collection in self.failing_scan:
            raise ConnectionError('Store unavailable: {}'.format(collection))
        return super(FailingSource, self).scan(collection)

    def get(self, collection, id):
        if collection in self.failing:
            raise ConnectionError('Store unavailable: {}'.format(collection))
        return super(FailingSource, self).get(collection, id)

    def query_in(self, collection, field, values):
        if collection in self.failing:
            raise ConnectionError('Store unavailable: {}'.format(collection))
        # Not a scan: works for `failing_scan` collections
        return [doc
                for doc in super(FailingSource, self).scan(collection)
                if get_path(doc, field) in values]
