"""
### Sort Operation

Sorting orders the documents by one or more fields: a priority list.

```javascript
$.get('/api/search?sort=' + JSON.stringify([
    { field: 'rating', order: 'desc' },  // best first
    { field: 'name' },  // then alphabetically
]))
```

#### Syntax

* A list of `{field, order}` objects. `order` is `asc` (the default), or `desc`
* A single `{field, order}` object
* A string: `rating:desc,name:asc`
* Any of the above, as a JSON string

#### Ordering

* Dates (and store timestamps) are ordered chronologically
* Numbers are ordered numerically
* Strings are ordered case-insensitively, ignoring accents
* Missing values go last, regardless of the order
* Documents that compare equal keep their original order

A special sort (e.g. `distance`) takes priority over these criteria: see docquery.handlers.special
"""

import unicodedata
from datetime import date, datetime
from functools import cmp_to_key
from logging import getLogger
from typing import List, Mapping, Optional

from .base import DocQueryHandlerBase
from .special import parse_special, SPECIAL_SORTS, SpecialSortBase
from ..document import is_number, is_timestamp, timestamp_to_datetime, to_millis, to_text
from ..exc import InvalidQueryError
from ..path import get_path, MISSING
from ..util.params import json_or_none

logger = getLogger(__name__)


def _string_key(value: str) -> str:
    """ Case-insensitive, accent-insensitive string key """
    decomposed = unicodedata.normalize('NFKD', value)
    return ''.join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def comparable_value(value):
    """ Convert a value into something that can be compared

    :return: None for missing values, a number for numbers and dates, a string for everything else
    """
    if value is None or value is MISSING:
        return None
    if is_timestamp(value):
        return to_millis(timestamp_to_datetime(value))
    if isinstance(value, datetime):
        return to_millis(value)
    if isinstance(value, date):
        return to_millis(datetime(value.year, value.month, value.day))
    if is_number(value):
        return value
    if isinstance(value, str):
        return _string_key(value)
    return _string_key(to_text(value))


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_scalars(a, b, order: str = 'asc') -> int:
    """ Compare two values for sorting

    :return: -1, 0, 1
    """
    a, b = comparable_value(a), comparable_value(b)

    # Missing values go last, whatever the order is
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1

    if is_number(a) and is_number(b):
        result = _cmp(a, b)
    elif isinstance(a, str) and isinstance(b, str):
        result = _cmp(a, b)
    else:
        result = _cmp(_string_key(to_text(a)), _string_key(to_text(b)))

    return -result if order == 'desc' else result


def compare_by_criteria(a: dict, b: dict, criteria: List[dict]) -> int:
    """ Compare two documents using a list of sort criteria """
    for c in criteria:
        result = compare_scalars(get_path(a, c['field']), get_path(b, c['field']), c['order'])
        if result:
            return result
    return 0


def sort_by_criteria(documents: List[dict], criteria: List[dict]) -> List[dict]:
    """ Sort documents by a list of criteria: [{field, order}]. Stable. """
    if not criteria:
        return list(documents)
    return sorted(documents, key=cmp_to_key(lambda a, b: compare_by_criteria(a, b, criteria)))


def parse_sort(spec) -> List[dict]:
    """ Parse sort criteria into a list of {field, order}

    Accepts: a list of objects, a single object, a comma-separated 'field:order' string, or a JSON string.
    """
    if not spec:
        return []

    # String syntax: JSON, or 'field:order,...'
    if isinstance(spec, str):
        decoded = json_or_none(spec)
        if isinstance(decoded, (list, Mapping)):
            spec = decoded
        else:
            spec = [dict(zip(('field', 'order'), (p.strip() for p in item.split(':', 1))))
                    for item in spec.split(',')]

    # Single object
    if isinstance(spec, Mapping):
        spec = [spec]

    if not isinstance(spec, (list, tuple)):
        raise InvalidQueryError('sort must be either a list, a string, or an object; {} provided.'
                                .format(type(spec).__name__))

    criteria = []
    for item in spec:
        if not isinstance(item, Mapping):
            raise InvalidQueryError('sort: every item must be an object; {!r} provided'.format(item))
        if not item.get('field'):
            continue

        order = item.get('order') or 'asc'
        if order not in ('asc', 'desc'):
            raise InvalidQueryError('sort: order can be either "asc" or "desc"; {!r} provided'.format(order))
        criteria.append(dict(field=item['field'], order=order))
    return criteria


class DocSort(DocQueryHandlerBase):
    """ Sorting: criteria, and special sorts.

        Handles three keys of the Query Object:
        * 'sort': sort criteria
        * 'special_sort': a special sort: {type, ...params}
        * 'include_distance': keep the fields that the special sort adds to documents
    """

    query_object_section_name = 'sort'

    def __init__(self, collection, source, special_sorts=None, distance_epsilon=1e-4):
        """ Init sorting

        :param special_sorts: Special sort classes, by name. Added to the built-in ones.
        :param distance_epsilon: Distances that differ by no more than this are ties
        """
        super(DocSort, self).__init__(collection, source)

        # Config
        self.special_sorts = {**SPECIAL_SORTS, **(special_sorts or {})}
        self.distance_epsilon = distance_epsilon

        # On input
        self.criteria = []
        self.special = None  # type: Optional[SpecialSortBase]
        self.special_input = None
        self.include_special_fields = False

        # Has the special sort been prepared successfully?
        self._special_prepared = False

    def input_prepare_query_object(self, query_object):
        """ Pack 'sort', 'special_sort', 'include_distance' into one tuple """
        if 'sort' in query_object or 'special_sort' in query_object:
            query_object['sort'] = (query_object.pop('sort', None),
                                    query_object.pop('special_sort', None),
                                    query_object.pop('include_distance', False))
            if query_object['sort'][:2] == (None, None):
                query_object.pop('sort')
        query_object.pop('include_distance', None)
        return query_object

    def input(self, sort_spec, special_sort=None, include_distance=False):
        # DocQuery gives us a tuple
        if isinstance(sort_spec, tuple):
            sort_spec, special_sort, include_distance = sort_spec

        super(DocSort, self).input(sort_spec)

        self.criteria = parse_sort(sort_spec)
        self.special_input = parse_special(special_sort, 'specialSort')
        self.special = self._init_special(self.special_input)
        self.include_special_fields = bool(include_distance)
        return self

    def _init_special(self, params: Optional[dict]):
        if not params:
            return None

        special_cls = self.special_sorts.get(params['type'])
        if special_cls is None:
            logger.warning('Unknown special sort type: %r', params['type'])
            return None
        if not special_cls.applies_to(self.collection):
            logger.warning('Special sort %r is not available for collection %r', params['type'], self.collection)
            return None
        return special_cls(params, epsilon=self.distance_epsilon)

    def is_input_empty(self):
        return not self.criteria and self.special is None

    def merge(self, sort_spec):
        """ Add more criteria, with a lower priority """
        self.criteria.extend(parse_sort(sort_spec))
        return self

    def fields(self) -> List[str]:
        """ List the fields the criteria refer to """
        return [c['field'] for c in self.criteria]

    def alter_documents(self, documents):
        """ Combined sort: the special sort first; regular criteria break its ties """
        self._special_prepared = self.special is not None and self.special.prepare(documents)

        if not self._special_prepared:
            return sort_by_criteria(documents, self.criteria)

        special, criteria = self.special, self.criteria

        def compare(a, b):
            return special.compare(a, b) or compare_by_criteria(a, b, criteria)

        return sorted(documents, key=cmp_to_key(compare))

    def finalize_documents(self, documents):
        """ Remove the fields that the special sort has added, unless the user wants them """
        if self._special_prepared:
            for doc in documents:
                self.special.finalize(doc, self.include_special_fields)
        return documents

    def get_final_input_value(self):
        return self.criteria
