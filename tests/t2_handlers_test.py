import unittest
from copy import copy, deepcopy

from docquery import Reusable
from docquery.exc import InvalidQueryError, ValidationError, PageOutOfRangeError
from docquery.handlers import *
from docquery.handlers.filter import parse_filter_group, matches_single, matches_group
from docquery.handlers.sort import parse_sort, sort_by_criteria, compare_scalars
from docquery.handlers.special import haversine_distance, to_coordinate, french_day_name, parse_mm_dd_yyyy
from docquery.handlers.search import tokenize, extract_searchable_fields, score_document
from docquery.handlers.project import select_fields
from docquery.handlers.populate import parse_populate

from .fixtures import make_source, ids, USERS, FailingSource


class HandlersTest(unittest.TestCase):
    """ Test individual handlers """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.source = make_source()
        self.users = self.source.scan('users')

    def test_filter_parse(self):
        # None, empty
        self.assertEqual(parse_filter_group(None).to_dict(), {'logic': 'and', 'filters': []})
        self.assertEqual(parse_filter_group('').to_dict(), {'logic': 'and', 'filters': []})

        # Malformed JSON: empty group
        self.assertEqual(parse_filter_group('{oops').to_dict(), {'logic': 'and', 'filters': []})

        # A list: AND; the operator defaults to `eq`
        self.assertEqual(parse_filter_group([{'field': 'a', 'value': 1}]).to_dict(),
                         {'logic': 'and', 'filters': [{'field': 'a', 'operator': 'eq', 'value': 1}]})

        # A single criterion
        self.assertEqual(parse_filter_group({'field': 'a', 'value': 1}).to_dict(),
                         {'logic': 'and', 'filters': [{'field': 'a', 'operator': 'eq', 'value': 1}]})

        # JSON, nested
        g = parse_filter_group('{"logic": "or", "filters": [{"field": "a", "value": 1}, '
                               '{"filters": [{"field": "b", "operator": "between", "value": 1, "value2": 2}]}]}')
        self.assertEqual(g.to_dict(), {'logic': 'or', 'filters': [
            {'field': 'a', 'operator': 'eq', 'value': 1},
            {'logic': 'and', 'filters': [{'field': 'b', 'operator': 'between', 'value': 1, 'value2': 2}]},
        ]})
        self.assertEqual(list(g.fields()), ['a', 'b'])

        # Errors
        self.assertRaises(InvalidQueryError, parse_filter_group, 1)
        self.assertRaises(InvalidQueryError, parse_filter_group, {'logic': 'xor', 'filters': []})
        self.assertRaises(InvalidQueryError, parse_filter_group, {'filters': 'a'})
        self.assertRaises(InvalidQueryError, parse_filter_group, [{'value': 1}])
        self.assertRaises(InvalidQueryError, parse_filter_group, ['a'])

    def test_filter_matching(self):
        doc = USERS[0]

        # Empty group matches anything
        for group in ({'logic': 'and', 'filters': []}, {'logic': 'or', 'filters': []}, [], None):
            self.assertTrue(matches_group(doc, group), group)
            self.assertTrue(matches_group({}, group), group)

        # AND / OR
        always = {'field': 'name', 'value': 'alice'}
        never = {'field': 'name', 'value': 'bob'}
        self.assertTrue(matches_group(doc, {'logic': 'or', 'filters': [always, never]}))
        self.assertFalse(matches_group(doc, {'logic': 'and', 'filters': [always, never]}))
        self.assertTrue(matches_group(doc, {'logic': 'and', 'filters': [always, always]}))
        self.assertFalse(matches_group(doc, {'logic': 'or', 'filters': [never, never]}))

        # Arrays: any element is enough
        self.assertTrue(matches_single(doc, {'field': 'tags', 'value': 'spa'}))
        self.assertTrue(matches_single(doc, {'field': 'workingDays.name', 'value': 'Samedi'}))
        self.assertFalse(matches_single(doc, {'field': 'tags', 'value': 'massage'}))
        self.assertTrue(matches_single(doc, {'field': 'tags', 'operator': 'in', 'value': ['massage', 'HAIR']}))

        # Timestamps
        self.assertTrue(matches_single(doc, {'field': 'createdAt', 'operator': 'lt', 'value': '2023-11-15'}))

        # Missing fields
        self.assertTrue(matches_single(doc, {'field': 'missing', 'operator': 'ne', 'value': 1}))
        self.assertFalse(matches_single(doc, {'field': 'missing', 'operator': 'eq', 'value': 1}))

        # Unknown operator: never matches
        with self.assertLogs('docquery.handlers.filter', 'WARNING'):
            self.assertFalse(matches_single(doc, {'field': 'name', 'operator': 'like', 'value': 'alice'}))

    def test_filter(self):
        # Simple filter
        f = DocFilter('users', self.source).input({'field': 'role', 'value': 'provider'})
        self.assertEqual(ids(f.alter_documents(self.users)), ['u1', 'u3', 'u4'])
        self.assertEqual(f.fields(), ['role'])
        self.assertFalse(f.is_input_empty())

        # Empty filter
        f = DocFilter('users', self.source).input(None)
        self.assertTrue(f.is_input_empty())
        self.assertEqual(ids(f.alter_documents(self.users)), ['u1', 'u2', 'u3', 'u4'])

        # Can't input() twice
        with self.assertRaises(RuntimeError):
            f.input(None)

        # Force filters
        f = DocFilter('users', self.source, force_filters={'field': 'rating', 'operator': 'gte', 'value': 4})
        f.input([{'field': 'address.city', 'value': 'Paris'}])
        self.assertEqual(ids(f.alter_documents(self.users)), ['u1', 'u3'])
        f = DocFilter('users', self.source, force_filters={'field': 'rating', 'operator': 'gte', 'value': 4.6})
        f.input([{'field': 'address.city', 'value': 'Paris'}])
        self.assertEqual(ids(f.alter_documents(self.users)), ['u3'])

        # merge()
        f = DocFilter('users', self.source).input({'logic': 'or', 'filters': [
            {'field': 'name', 'value': 'Alice'},
            {'field': 'name', 'value': 'Bob'},
        ]})
        f.merge({'field': 'role', 'value': 'client'})
        self.assertEqual(ids(f.alter_documents(self.users)), ['u2'])

        # merge_search(): only with the setting
        f = DocFilter('users', self.source).input(None)
        f.merge_search(['description'], 'salon')
        self.assertTrue(f.is_input_empty())

        f = DocFilter('users', self.source, search_as_filter=True).input(None)
        f.merge_search(['description', 'name'], 'salon')
        self.assertEqual(f.get_final_input_value(), {'logic': 'or', 'filters': [
            {'field': 'description', 'operator': 'contains', 'value': 'salon'},
            {'field': 'name', 'operator': 'contains', 'value': 'salon'},
        ]})
        self.assertEqual(ids(f.alter_documents(self.users)), ['u1', 'u3'])

        # merge_search(): '*' is not a search
        f = DocFilter('users', self.source, search_as_filter=True).input(None)
        f.merge_search(['description'], '*')
        self.assertTrue(f.is_input_empty())

    def test_special_filter(self):
        self.assertEqual(french_day_name(parse_mm_dd_yyyy('03-16-2025')), 'Dimanche')
        self.assertEqual(french_day_name(parse_mm_dd_yyyy('03-17-2025')), 'Lundi')
        self.assertEqual(french_day_name(parse_mm_dd_yyyy('03-15-2025')), 'Samedi')
        self.assertIsNone(parse_mm_dd_yyyy('2025-03-15'))
        self.assertIsNone(parse_mm_dd_yyyy('02-30-2025'))

        def special_filter(params, collection='users'):
            f = DocFilter(collection, self.source).input((None, params))
            return ids(f.alter_documents(self.source.scan(collection)))

        # Monday, Saturday
        self.assertEqual(special_filter({'type': 'workingDayOpen', 'date': '03-17-2025'}), ['u1'])
        self.assertEqual(special_filter('{"type": "workingDayOpen", "date": "03-15-2025"}'), ['u3'])

        # No date: nothing is filtered
        with self.assertLogs('docquery.handlers.special', 'ERROR'):
            self.assertEqual(special_filter({'type': 'workingDayOpen'}), ['u1', 'u2', 'u3', 'u4'])

        # Invalid date: nothing is open
        with self.assertLogs('docquery.handlers.special', 'ERROR'):
            self.assertEqual(special_filter({'type': 'workingDayOpen', 'date': 'tomorrow'}), [])

        # Unknown type, wrong collection: ignored
        with self.assertLogs('docquery.handlers.filter', 'WARNING'):
            self.assertEqual(special_filter({'type': 'magic'}), ['u1', 'u2', 'u3', 'u4'])
        with self.assertLogs('docquery.handlers.filter', 'WARNING'):
            self.assertEqual(special_filter({'type': 'workingDayOpen', 'date': '03-17-2025'}, 'services'),
                             ['s1', 's2', 's3', 's4'])

        # No `type`: not a special filter
        self.assertEqual(special_filter({'date': '03-17-2025'}), ['u1', 'u2', 'u3', 'u4'])

    def test_sort_parse(self):
        self.assertEqual(parse_sort(None), [])
        self.assertEqual(parse_sort('name'), [{'field': 'name', 'order': 'asc'}])
        self.assertEqual(parse_sort('rating:desc, name:asc'), [{'field': 'rating', 'order': 'desc'},
                                                                {'field': 'name', 'order': 'asc'}])
        self.assertEqual(parse_sort({'field': 'name', 'order': 'desc'}), [{'field': 'name', 'order': 'desc'}])
        self.assertEqual(parse_sort('[{"field": "name"}, {"order": "desc"}]'), [{'field': 'name', 'order': 'asc'}])
        self.assertRaises(InvalidQueryError, parse_sort, 'name:up')
        self.assertRaises(InvalidQueryError, parse_sort, 1)
        self.assertRaises(InvalidQueryError, parse_sort, ['name'])

    def test_sort(self):
        # Scalars
        self.assertEqual(compare_scalars(1, 2), -1)
        self.assertEqual(compare_scalars(1, 2, 'desc'), 1)
        self.assertEqual(compare_scalars('b', 'A'), 1)
        self.assertEqual(compare_scalars('é', 'e'), 0)
        self.assertEqual(compare_scalars(None, 1), 1)
        self.assertEqual(compare_scalars(None, 1, 'desc'), 1)
        self.assertEqual(compare_scalars(1, None, 'desc'), -1)
        self.assertEqual(compare_scalars({'_seconds': 1, '_nanoseconds': 0}, {'_seconds': 2, '_nanoseconds': 0}), -1)

        def sort(spec):
            return ids(DocSort('users', self.source).input(spec).alter_documents(self.source.scan('users')))

        # Accents are ignored: Chloé is between Bob and David
        self.assertEqual(sort('name'), ['u1', 'u2', 'u3', 'u4'])
        self.assertEqual(sort('name:desc'), ['u4', 'u3', 'u2', 'u1'])
        # Timestamps
        self.assertEqual(sort('createdAt:desc'), ['u3', 'u2', 'u1', 'u4'])
        # Missing values last, whatever the order
        self.assertEqual(sort('rating:asc'), ['u2', 'u1', 'u3', 'u4'])
        self.assertEqual(sort('rating:desc'), ['u3', 'u1', 'u2', 'u4'])
        # Multiple criteria
        self.assertEqual(sort([{'field': 'address.city'}, {'field': 'rating', 'order': 'desc'}]),
                         ['u2', 'u4', 'u3', 'u1'])
        # No criteria
        self.assertEqual(sort(None), ['u1', 'u2', 'u3', 'u4'])

    def test_sort_is_stable(self):
        docs = [{'id': str(i), 'group': i % 3} for i in range(10)]
        criteria = [{'field': 'group', 'order': 'asc'}]

        once = sort_by_criteria(docs, criteria)
        twice = sort_by_criteria(once, criteria)
        self.assertEqual(ids(once), ['0', '3', '6', '9', '1', '4', '7', '2', '5', '8'])
        self.assertEqual(ids(twice), ids(once))

    def test_special_sort(self):
        paris, lyon = (48.8566, 2.3522), (45.764, 4.8357)
        self.assertAlmostEqual(haversine_distance(*paris, *paris), 0)
        self.assertAlmostEqual(haversine_distance(*paris, *lyon), 392, delta=2)

        def special_sort(params, sort_spec=None, include_distance=False, **settings):
            s = DocSort('users', self.source, **settings).input((sort_spec, params, include_distance))
            docs = s.alter_documents(self.source.scan('users'))
            return s.finalize_documents(docs)

        origin = {'type': 'distance', 'lat': 48.8566, 'lon': 2.3522}

        # Nearest first; no coordinates: last
        docs = special_sort(origin)
        self.assertEqual(ids(docs), ['u1', 'u3', 'u2', 'u4'])
        self.assertNotIn('distance', docs[0])

        # Farthest first; no coordinates: still last
        docs = special_sort({**origin, 'order': 'desc'}, include_distance=True)
        self.assertEqual(ids(docs), ['u2', 'u3', 'u1', 'u4'])
        self.assertAlmostEqual(docs[0]['distance'], 392, delta=2)
        self.assertIsNone(docs[3]['distance'])

        # latitude/longitude, as strings
        docs = special_sort({'type': 'distance', 'latitude': '45.764', 'longitude': '4.8357'})
        self.assertEqual(ids(docs), ['u2', 'u1', 'u3', 'u4'])

        # Non-finite and unparseable coordinates are no coordinates: last, either way
        source = make_source(users=deepcopy(USERS) + [
            {'id': 'u5', 'name': 'Eve', 'address': {'latitude': 'abc', 'longitude': 2.35}},
            {'id': 'u6', 'name': 'Frank', 'address': {'latitude': 'inf', 'longitude': 2.35}},
        ])
        for order, expected in (('asc', ['u1', 'u3', 'u2']), ('desc', ['u2', 'u3', 'u1'])):
            s = DocSort('users', source).input((None, {**origin, 'order': order}, True))
            docs = s.finalize_documents(s.alter_documents(source.scan('users')))
            self.assertEqual(ids(docs)[:3], expected, order)
            self.assertEqual(sorted(ids(docs)[3:]), ['u4', 'u5', 'u6'], order)
            self.assertEqual([d['distance'] for d in docs[3:]], [None, None, None], order)

        # An infinite origin is an invalid origin
        with self.assertLogs('docquery.handlers.special', 'ERROR'):
            docs = special_sort({'type': 'distance', 'lat': 'inf', 'lon': 2.35}, 'name:desc')
        self.assertEqual(ids(docs), ['u4', 'u3', 'u2', 'u1'])

        # Ties are broken by the sort criteria: everyone is at the same distance with a huge epsilon
        docs = special_sort(origin, 'name:desc', distance_epsilon=1000)
        self.assertEqual(ids(docs), ['u3', 'u2', 'u1', 'u4'])

        # Invalid origin: the regular sort only
        with self.assertLogs('docquery.handlers.special', 'ERROR'):
            docs = special_sort({'type': 'distance', 'lat': 'north'}, 'name:desc')
        self.assertEqual(ids(docs), ['u4', 'u3', 'u2', 'u1'])

        # Other collections: not available
        with self.assertLogs('docquery.handlers.sort', 'WARNING'):
            s = DocSort('services', self.source).input((None, origin, False))
        self.assertIsNone(s.special)
        self.assertTrue(s.is_input_empty())

    def test_coordinates(self):
        self.assertEqual(to_coordinate('48.85'), 48.85)
        self.assertEqual(to_coordinate(-2), -2)
        for value in ('inf', '-inf', 'Infinity', '1e999', float('inf'), 'nan', 'abc', None, ''):
            self.assertIsNone(to_coordinate(value), value)

        # Antipodal points: half the circumference, no matter the rounding
        for lat, lon in ((0, 0), (48.8566, 2.3522), (-33.8688, 151.2093), (90, 0), (12.34, -56.78)):
            self.assertAlmostEqual(haversine_distance(lat, lon, -lat, lon + 180), 20015.09, delta=0.1)

    def test_project(self):
        doc = USERS[0]

        self.assertIs(select_fields(doc, '*'), doc)
        self.assertIs(select_fields(doc, None), doc)
        self.assertEqual(select_fields(doc, 'name, address.city'),
                         {'id': 'u1', 'name': 'Alice', 'address': {'city': 'Paris'}})
        self.assertEqual(select_fields(doc, ['name', 'missing']), {'id': 'u1', 'name': 'Alice'})
        self.assertIsNone(select_fields(None, 'name'))

        # Handler
        p = DocProject('users', self.source).input('name')
        p.keep('services')
        self.assertEqual(p.alter_documents([{'id': 'u1', 'name': 'A', 'role': 'x', 'services': []}]),
                         [{'id': 'u1', 'name': 'A', 'services': []}])
        self.assertEqual(p.get_final_input_value(), ['name'])

        # Force exclude
        p = DocProject('users', self.source, force_exclude=('role',)).input(None)
        self.assertTrue(p.is_input_empty())
        self.assertEqual(p.alter_documents([{'id': 'u1', 'name': 'A', 'role': 'x'}]),
                         [{'id': 'u1', 'name': 'A'}])
        self.assertEqual(p.get_final_input_value(), '*')

        self.assertRaises(InvalidQueryError, DocProject('users', self.source).input, 1)

    def test_search_fields(self):
        self.assertEqual(tokenize('  Hair   SALON '), ['hair', 'salon'])
        self.assertEqual(tokenize(None), [])

        fields = {f.path: f.weight for f in extract_searchable_fields(self.users)}
        self.assertEqual(fields, {
            'name': 1.0, 'role': 1.0, 'rating': 1.0, 'description': 1.0, 'tags': 1.0,
            'address.city': 0.8, 'address.latitude': 0.8, 'address.longitude': 0.8,
            'workingDays.name': 0.8, 'workingDays.isOpen': 0.8,
        })

        # Skipped: ids, private fields, timestamps, too deep
        fields = extract_searchable_fields([{
            'id': 'x', '_private': 'y', 'when': {'seconds': 1, 'nanoseconds': 0},
            'a': {'b': {'c': {'d': {'e': 'deep'}}}},
            'nested': [[{'name': 'n'}]],
        }], max_depth=2)
        self.assertEqual([f.path for f in fields], ['nested.name'])

    def test_search_score(self):
        fields = [RelationField('name'), RelationField('description', 0.5)]

        # Exact: 100 + word 15 + position 2
        self.assertEqual(score_document({'name': 'Salon'}, ['salon'], fields), 117)
        # Prefix: 50 + 15 + 2
        self.assertEqual(score_document({'name': 'Salon Paris'}, ['salon'], fields), 67)
        # Substring: 25 + 2; not a word
        self.assertEqual(score_document({'name': 'Hairsalon'}, ['salon'], fields), 27)
        # Weight
        self.assertEqual(score_document({'description': 'Salon'}, ['salon'], fields), 58.5)
        # Earlier terms matter more
        self.assertEqual(score_document({'name': 'x hair'}, ['hair', 'salon'], fields), 25 + 15 + 4)
        self.assertEqual(score_document({'name': 'x hair'}, ['salon', 'hair'], fields), 25 + 15 + 2)
        # Arrays: every element
        self.assertEqual(score_document({'name': ['salon', 'salon']}, ['salon'], fields), 234)
        # Exact beats partial
        self.assertGreater(score_document({'name': 'hair'}, ['hair'], fields),
                           score_document({'name': 'haircut'}, ['hair'], fields))

    def test_search(self):
        def search(**search_input):
            s = DocSearch('users', self.source).input(search_input)
            return s, s.finalize_documents(s.alter_documents(self.source.scan('users')))

        # Discovered fields
        s, docs = search(query='salon')
        self.assertEqual(s.terms, ['salon'])
        self.assertEqual(ids(docs), ['u1', 'u3'])
        self.assertNotIn('_relevanceScore', docs[0])

        # Nested fields weigh less
        s, docs = search(query='Paris', include_score=True)
        self.assertEqual(ids(docs), ['u1', 'u3'])
        self.assertAlmostEqual(docs[0]['_relevanceScore'], 93.6 + 42)
        self.assertAlmostEqual(docs[1]['_relevanceScore'], 93.6)

        # Explicit fields, weights
        s, docs = search(query='alice', fields='name', weights='{"name": 2}', include_score=True)
        self.assertEqual(ids(docs), ['u1'])
        self.assertEqual(docs[0]['_relevanceScore'], 234)
        self.assertEqual(s.searchable_fields, [RelationField('name', 2)])

        # Min score
        s, docs = search(query='paris', min_score=100)
        self.assertEqual(ids(docs), ['u1'])

        # Return all
        s, docs = search(query='*')
        self.assertTrue(s.return_all)
        self.assertTrue(s.is_input_empty())
        self.assertEqual(ids(docs), ['u1', 'u2', 'u3', 'u4'])

        # Invalid input
        self.assertRaises(InvalidQueryError, DocSearch('users', self.source).input, {'query': 'a', 'weights': [1]})
        self.assertRaises(InvalidQueryError, DocSearch('users', self.source).input, {'query': 'a', 'fields': 1})

    def test_search_min_score_setting(self):
        # The user can raise it, not lower it
        s = DocSearch('users', self.source, min_score=50).input({'query': 'a', 'min_score': 10})
        self.assertEqual(s.min_score, 50)
        s = DocSearch('users', self.source, min_score=50).input({'query': 'a', 'min_score': 70})
        self.assertEqual(s.min_score, 70)

    def test_limit(self):
        docs = [{'id': str(i)} for i in range(1, 26)]

        def paginate(page=None, limit=None, **settings):
            l = DocLimit('users', self.source, **settings).input(page, limit)
            return l, l.paginate(docs)

        # Page 3 of 10-item pages: the last 5
        l, page = paginate(3, 10)
        self.assertEqual(ids(page), ['21', '22', '23', '24', '25'])
        self.assertEqual(l.pagination, {
            'page': 3, 'limit': 10, 'totalPages': 3, 'totalResults': 25,
            'hasNextPage': False, 'hasPrevPage': True, 'nextPage': None, 'prevPage': 2,
            'startIndex': 21, 'endIndex': 25, 'nextCursor': None,
        })

        # Page 1
        l, page = paginate(None, 10)
        self.assertEqual(len(page), 10)
        self.assertEqual(l.pagination['nextCursor'], '10')
        self.assertEqual(l.pagination['nextPage'], 2)
        self.assertFalse(l.pagination['hasPrevPage'])

        # Page 4: does not exist
        with self.assertRaises(PageOutOfRangeError):
            paginate(4, 10)

        # Any page of nothing is fine
        l = DocLimit('users', self.source).input(5, 10)
        self.assertEqual(l.paginate([]), [])
        self.assertEqual(l.pagination['totalPages'], 0)

        # Page < 1
        with self.assertRaises(ValidationError) as e:
            paginate(0, 10)
        self.assertEqual(str(e.exception), 'Page number must be greater than 0')

        # Junk page: the first one
        l, page = paginate('abc', '10')
        self.assertEqual(l.page, 1)
        self.assertEqual(l.limit, 10)

        # Default limit, max items
        l, page = paginate(None, None, default_limit=7)
        self.assertEqual(len(page), 7)
        l, page = paginate(None, 0, default_limit=7)
        self.assertEqual(l.limit, 7)
        l, page = paginate(None, 1000, max_items=20)
        self.assertEqual(l.limit, 20)

        self.assertRaises(InvalidQueryError, DocLimit('users', self.source).input, 1, 'many')

    def test_limit_cursor(self):
        users = sort_by_criteria(self.users, [{'field': 'name', 'order': 'asc'}])
        criteria = [{'field': 'name', 'order': 'asc'}]

        def paginate(cursor, documents=users):
            l = DocLimit('users', self.source).input(None, 2, cursor)
            return l, l.paginate(documents, criteria)

        # The cursor is in the list
        l, page = paginate('u2')
        self.assertEqual(ids(page), ['u3', 'u4'])
        self.assertEqual(l.pagination['page'], 2)
        self.assertTrue(l.pagination['hasPrevPage'])
        self.assertFalse(l.pagination['hasNextPage'])

        # The cursor is not in the list: its sort keys tell where to continue
        providers = [doc for doc in users if doc['role'] == 'provider']
        l, page = paginate('u2', providers)
        self.assertEqual(ids(page), ['u3', 'u4'])

        # Unknown cursor: ignored
        with self.assertLogs('docquery.handlers.limit', 'WARNING'):
            l, page = paginate('nope')
        self.assertEqual(ids(page), ['u1', 'u2'])
        self.assertEqual(l.pagination['nextCursor'], 'u2')

        self.assertRaises(InvalidQueryError, DocLimit('users', self.source).input, None, None, 1)

    def test_populate_parse(self):
        steps = parse_populate('{"field": "vendorId", "collection": "users", "as": "vendor"}')
        self.assertEqual(len(steps), 1)
        self.assertTrue(steps[0].is_forward)
        self.assertEqual(steps[0].target, 'vendor')
        self.assertEqual(steps[0].to_dict(),
                         {'collection': 'users', 'select': '*', 'as': 'vendor', 'field': 'vendorId'})

        # Defaults
        forward, reverse, both, typed, neither = parse_populate([
            {'field': 'vendorId', 'collection': 'users'},
            {'link': 'vendorId', 'collection': 'services'},
            {'field': 'a', 'link': 'b', 'collection': 'services'},
            {'field': 'a', 'link': 'b', 'collection': 'services', 'type': 'reverse'},
            {'collection': 'services'},
        ])
        self.assertEqual((forward.direction, forward.target), ('forward', 'vendorId'))
        self.assertEqual((reverse.direction, reverse.target), ('reverse', 'services'))
        self.assertEqual(both.direction, None)
        self.assertFalse(both.is_valid)
        self.assertEqual((typed.direction, typed.target), ('reverse', 'services'))
        self.assertFalse(neither.is_valid)

        # Errors
        self.assertRaises(InvalidQueryError, parse_populate, [{'field': 'a'}])
        self.assertRaises(InvalidQueryError, parse_populate, ['users'])
        self.assertRaises(InvalidQueryError, parse_populate, 1)

    def test_populate_forward(self):
        source = make_source(
            docs=[{'id': 'a', 'vendorId': 'v1'}],
            vendors={'v1': {'name': 'Bob'}},
        )
        p = DocPopulate('docs', source).input([{'field': 'vendorId', 'collection': 'vendors', 'as': 'vendor'}])
        self.assertEqual(p.alter_documents(source.scan('docs')),
                         [{'id': 'a', 'vendorId': 'v1', 'vendor': {'id': 'v1', 'name': 'Bob'}}])
        self.assertEqual([o.status for o in p.outcomes], [PopulateStatus.OK])

        # Lists, missing documents, select
        p = DocPopulate('services', self.source).input([
            {'field': 'categoryIds', 'collection': 'categories', 'as': 'categories', 'select': 'name'},
            {'field': 'vendorId', 'collection': 'users', 'select': 'name'},
        ])
        services = p.alter_documents(self.source.scan('services'))
        self.assertEqual(services[1]['categories'], [{'id': 'c1', 'name': 'Hair'}, {'id': 'c2', 'name': 'Color'}])
        self.assertEqual(services[2]['categories'], None)
        self.assertEqual(services[0]['vendorId'], {'id': 'u1', 'name': 'Alice'})
        self.assertEqual(services[3]['vendorId'], None)

        # Missing documents are omitted from lists, and are None for single ids
        source = make_source(docs=[{'id': 'a', 'refs': ['c1', 'zzz'], 'ref': 'zzz'}])
        p = DocPopulate('docs', source).input([
            {'field': 'refs', 'collection': 'categories'},
            {'field': 'ref', 'collection': 'categories'},
        ])
        doc, = p.alter_documents(source.scan('docs'))
        self.assertEqual(ids(doc['refs']), ['c1'])
        self.assertIsNone(doc['ref'])

    def test_populate_batches(self):
        # 25 ids: 3 lookups of 10
        source = make_source(
            docs=[{'id': 'd', 'refs': ['v{}'.format(i) for i in range(25)]}],
            vendors=[{'id': 'v{}'.format(i)} for i in range(25)],
        )
        calls = []
        get_many = source.get_many
        source.get_many = lambda collection, batch: calls.append(list(batch)) or get_many(collection, batch)

        p = DocPopulate('docs', source).input({'field': 'refs', 'collection': 'vendors'})
        doc, = p.alter_documents(source.scan('docs'))
        self.assertEqual(len(doc['refs']), 25)
        self.assertEqual(sorted(len(c) for c in calls), [5, 10, 10])

        # Repeated ids are looked up once, in the order they come in
        source = make_source(
            docs=[{'id': 'a', 'refs': ['v2', 'v0', 'v2']}, {'id': 'b', 'refs': ['v1', 'v0']}],
            vendors=[{'id': 'v0'}, {'id': 'v1'}, {'id': 'v2'}],
        )
        calls = []
        get_many = source.get_many
        source.get_many = lambda collection, batch: calls.append(list(batch)) or get_many(collection, batch)

        p = DocPopulate('docs', source).input({'field': 'refs', 'collection': 'vendors'})
        a, b = p.alter_documents(source.scan('docs'))
        self.assertEqual(calls, [['v2', 'v0', 'v1']])
        self.assertEqual(ids(a['refs']), ['v2', 'v0', 'v2'])
        self.assertEqual(ids(b['refs']), ['v1', 'v0'])

    def test_populate_through_arrays(self):
        source = make_source(orders=[
            {'id': 'o1', 'items': [{'serviceId': 's1', 'qty': 2}, {'serviceId': 's3', 'qty': 1}, {'qty': 5}]},
            {'id': 'o2', 'items': [{'serviceId': 's1', 'qty': 3}]},
        ])
        p = DocPopulate('orders', source).input({'field': 'items.serviceId', 'collection': 'services',
                                                  'as': 'items.service', 'select': 'title'})
        o1, o2 = p.alter_documents(source.scan('orders'))

        # Every item gets its own service, and keeps the rest of its fields
        self.assertEqual(o1['items'], [
            {'serviceId': 's1', 'qty': 2, 'service': {'id': 's1', 'title': 'Haircut'}},
            {'serviceId': 's3', 'qty': 1, 'service': {'id': 's3', 'title': 'Manicure'}},
            {'qty': 5, 'service': None},
        ])
        self.assertEqual(o2['items'], [{'serviceId': 's1', 'qty': 3, 'service': {'id': 's1', 'title': 'Haircut'}}])

    def test_populate_reverse(self):
        source = make_source(
            users=[{'id': 'u1'}],
            services=[{'id': 's1', 'vendorId': 'u1'}],
        )
        p = DocPopulate('users', source).input({'link': 'vendorId', 'collection': 'services', 'as': 'services'})
        self.assertEqual(p.alter_documents(source.scan('users')),
                         [{'id': 'u1', 'services': [{'id': 's1', 'vendorId': 'u1'}]}])

        # Scalar links, array links; the default `as`
        p = DocPopulate('users', self.source).input([
            {'link': 'vendorId', 'collection': 'services', 'select': 'title'},
            {'link': 'vendorIds', 'collection': 'services', 'as': 'groupSessions', 'select': 'title'},
        ])
        users = p.alter_documents(self.source.scan('users'))
        self.assertEqual([ids(u['services']) for u in users], [['s1', 's2'], [], ['s3'], []])
        self.assertEqual([ids(u['groupSessions']) for u in users], [['s4'], [], ['s4'], []])
        self.assertEqual(users[0]['services'][0], {'id': 's1', 'title': 'Haircut'})

    def test_populate_nested(self):
        p = DocPopulate('services', self.source).input([
            {'field': 'vendorId', 'collection': 'users', 'as': 'vendor', 'select': 'name', 'populate': [
                {'link': 'vendorId', 'collection': 'services', 'as': 'services', 'select': 'title'},
            ]},
        ])
        services = p.alter_documents(self.source.scan('services'))
        self.assertEqual(services[0]['vendor'], {'id': 'u1', 'name': 'Alice', 'services': [
            {'id': 's1', 'title': 'Haircut'},
            {'id': 's2', 'title': 'Coloring'},
        ]})
        self.assertEqual(ids(services[2]['vendor']['services']), ['s3'])
        self.assertIsNone(services[3]['vendor'])
        self.assertEqual([o.path for o in p.outcomes], ['vendor', 'vendor.services'])

    def test_populate_failures(self):
        source = FailingSource({
            'users': [{'id': 'u1'}],
            'services': [{'id': 's1', 'vendorId': 'u1', 'vendorIds': ['u1']}],
        }, failing_scan=('services',))

        # The `in` lookup works, the scan fails: partial
        p = DocPopulate('users', source).input([
            {'link': 'vendorId', 'collection': 'services'},
            {'link': 'vendorIds', 'collection': 'services', 'as': 'group'},
            {'field': 'a', 'link': 'b', 'collection': 'services'},
        ])
        with self.assertLogs('docquery.handlers.populate', 'WARNING'):
            users = p.alter_documents(source.scan('users'))
        self.assertEqual(ids(users[0]['services']), ['s1'])
        self.assertEqual(users[0]['group'], [])
        self.assertEqual([o.status for o in p.outcomes],
                         [PopulateStatus.PARTIAL, PopulateStatus.PARTIAL, PopulateStatus.SKIPPED])
        self.assertIn('Store unavailable', p.outcomes[0].errors[0])
        self.assertEqual(p.outcomes[2].to_dict()['status'], 'skipped')

        # Everything fails: no related data
        source = FailingSource({'services': [{'id': 's1', 'vendorId': 'u1'}]}, failing=('users',))
        p = DocPopulate('services', source).input({'field': 'vendorId', 'collection': 'users', 'as': 'vendor'})
        with self.assertLogs('docquery.handlers.populate', 'ERROR'):
            services = p.alter_documents(source.scan('services'))
        self.assertIsNone(services[0]['vendor'])
        self.assertEqual(p.outcomes[0].status, PopulateStatus.PARTIAL)

    def test_populate_allowed_collections(self):
        p = DocPopulate('services', self.source, allowed_collections=('users',))
        p.input({'field': 'vendorId', 'collection': 'users'})

        p = DocPopulate('services', self.source, allowed_collections=('users',))
        with self.assertRaises(InvalidQueryError):
            p.input({'field': 'vendorId', 'collection': 'users', 'populate': [
                {'field': 'x', 'collection': 'secrets'},
            ]})

    def test_populate_refers(self):
        p = DocPopulate('users', self.source).input([
            {'link': 'vendorId', 'collection': 'services'},
            {'field': 'categoryId', 'collection': 'categories', 'as': 'category'},
        ])
        self.assertTrue(p.has_reverse)
        self.assertEqual(p.target_fields, ['services', 'category'])
        self.assertEqual(p.source_fields, ['categoryId'])
        self.assertTrue(p.refers_to_populated(['name', 'services.title']))
        self.assertTrue(p.refers_to_populated(['category']))
        self.assertFalse(p.refers_to_populated(['categoryName', 'servicesCount']))

    def test_reusable(self):
        f = Reusable(DocFilter('users', self.source, force_filters={'field': 'role', 'value': 'provider'}))

        # Every input() gets a fresh copy
        f1 = f.input({'field': 'address.city', 'value': 'Paris'})
        f2 = f.input({'field': 'address.city', 'value': 'Marseille'})
        self.assertEqual(ids(f1.alter_documents(self.users)), ['u1', 'u3'])
        self.assertEqual(ids(f2.alter_documents(self.users)), ['u4'])

        # Copies don't share their state
        p = DocPopulate('users', self.source)
        p1, p2 = copy(p), copy(p)
        p1.input({'link': 'vendorId', 'collection': 'services'}).alter_documents(self.source.scan('users'))
        self.assertEqual(len(p1.outcomes), 1)
        self.assertEqual(len(p2.outcomes), 0)
