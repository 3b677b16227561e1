"""
### Filter Operation

Filtering keeps the documents that match the criteria.

A criterion compares a field with a value:

```javascript
{ field: 'price', operator: 'lte', value: 50 }
{ field: 'createdAt', operator: 'between', value: '2024-01-01', value2: '2024-12-31' }
```

Criteria are put together into groups, which can be nested:

```javascript
$.get('/api/search?filters=' + JSON.stringify({
    logic: 'and',
    filters: [
        { field: 'address.city', operator: 'eq', value: 'Paris' },
        { logic: 'or', filters: [
            { field: 'categories.key', operator: 'eq', value: 'hair' },
            { field: 'categories.key', operator: 'eq', value: 'spa' },
        ]},
    ]
}))
```

A bare list of criteria is an AND group, and so is a single criterion. An empty group matches everything.

#### Field Operators

* `eq`, `ne`: equality
* `gt`, `gte`, `lt`, `lte`: comparison
* `in`: the field is equal to any of the values in the list
* `contains`, `startsWith`, `endsWith`: case-insensitive string operators
* `between`: `value <= field <= value2`

Values are compared as dates, numbers, or case-insensitive strings. See: docquery.compare

#### Nested fields and arrays

Fields are given in dot-notation: `address.city`.
When the path goes through an array, it's enough when *any* element matches:
`{ field: 'categories.key', operator: 'eq', value: 'hair' }` matches `{ categories: [{key: 'spa'}, {key: 'hair'}] }`.

Missing values are "less than everything": they only match `ne`, `lt`, `lte`.
"""

from logging import getLogger
from typing import Iterable, List, Mapping, Optional

from .base import DocQueryHandlerBase
from .special import parse_special, SPECIAL_FILTERS
from ..compare import Operator, compare_values
from ..exc import InvalidQueryError
from ..path import get_path, flatten_value, MISSING
from ..util.params import decode_if_string

logger = getLogger(__name__)


# region Filter Expression Classes

class FilterExpressionBase:
    """ An expression from the DocFilter object """

    __slots__ = ()

    def evaluate(self, doc: dict) -> bool:
        """ Test the expression against a document """
        raise NotImplementedError()

    def fields(self) -> Iterable[str]:
        """ List the fields that this expression refers to """
        raise NotImplementedError()

    def to_dict(self) -> dict:
        """ Convert the expression back into its JSON form """
        raise NotImplementedError()


class FilterBooleanExpression(FilterExpressionBase):
    """ A group of expressions, put together with `and` or `or` """

    __slots__ = ('logic', 'expressions')

    def __init__(self, logic: str, expressions: List[FilterExpressionBase]):
        self.logic = logic
        self.expressions = expressions

    def __repr__(self):
        return '({}: {})'.format(self.logic, self.expressions)

    def __bool__(self):
        return bool(self.expressions)

    def evaluate(self, doc):
        # Empty group: always a match
        if not self.expressions:
            return True

        if self.logic == 'or':
            return any(e.evaluate(doc) for e in self.expressions)
        else:
            return all(e.evaluate(doc) for e in self.expressions)

    def fields(self):
        for e in self.expressions:
            yield from e.fields()

    def to_dict(self):
        return dict(logic=self.logic,
                    filters=[e.to_dict() for e in self.expressions])


class FilterFieldExpression(FilterExpressionBase):
    """ A comparison of a field with a value """

    __slots__ = ('field', 'operator_str', 'operator', 'value', 'value2')

    def __init__(self, field: str, operator_str: str, value, value2=None):
        self.field = field
        self.operator_str = operator_str
        self.value = value
        self.value2 = value2

        #: The operator, or None if unknown (never matches)
        try:
            self.operator = Operator.lookup(operator_str)
        except ValueError:
            self.operator = None

    def __repr__(self):
        return '{} {} {!r}'.format(self.field, self.operator_str, self.value)

    def evaluate(self, doc):
        if self.operator is None:
            return False

        value = get_path(doc, self.field)
        if value is MISSING:
            value = None

        # Arrays: any element is a match
        if isinstance(value, list):
            return any(compare_values(v, self.operator, self.value, self.value2)
                       for v in flatten_value(value))

        return compare_values(value, self.operator, self.value, self.value2)

    def fields(self):
        yield self.field

    def to_dict(self):
        d = dict(field=self.field, operator=self.operator_str, value=self.value)
        if self.value2 is not None:
            d['value2'] = self.value2
        return d

# endregion


def parse_filter_group(criteria, where: str = 'filters') -> FilterBooleanExpression:
    """ Parse a filter group.

    Accepts: a group object `{logic, filters}`, a list of criteria (AND), its JSON string, or None.
    Malformed JSON makes an empty group.
    """
    criteria = decode_if_string(criteria, where)

    if not criteria:
        return FilterBooleanExpression('and', [])

    # A list, or a single criterion
    if isinstance(criteria, (list, tuple)):
        criteria = dict(logic='and', filters=criteria)
    elif isinstance(criteria, Mapping) and 'filters' not in criteria and 'field' in criteria:
        criteria = dict(logic='and', filters=[criteria])

    if not isinstance(criteria, Mapping):
        raise InvalidQueryError('{} must be one of: null, list, object'.format(where))

    logic = criteria.get('logic') or 'and'
    if logic not in ('and', 'or'):
        raise InvalidQueryError('{}: logic must be either "and" or "or"; {!r} provided'.format(where, logic))

    filters = criteria.get('filters') or []
    if not isinstance(filters, (list, tuple)):
        raise InvalidQueryError('{}: `filters` must be a list'.format(where))

    return FilterBooleanExpression(logic, [_parse_filter_item(item, where) for item in filters])


def _parse_filter_item(item, where: str) -> FilterExpressionBase:
    if not isinstance(item, Mapping):
        raise InvalidQueryError('{}: every filter must be an object; {!r} provided'.format(where, item))

    # Nested group
    if 'filters' in item:
        return parse_filter_group(item, where)

    # Criterion
    field = item.get('field')
    if not field or not isinstance(field, str):
        raise InvalidQueryError('{}: every criterion must have a `field`'.format(where))

    operator_str = item.get('operator') or 'eq'
    expression = FilterFieldExpression(field, operator_str, item.get('value'), item.get('value2'))
    if expression.operator is None:
        logger.warning('Unknown filter operator %r for field %r: the criterion will never match',
                       operator_str, field)
    return expression


def matches_single(doc: dict, criteria: dict) -> bool:
    """ Test a single criterion `{field, operator, value, value2?}` against a document """
    return _parse_filter_item(criteria, 'filters').evaluate(doc)


def matches_group(doc: dict, group) -> bool:
    """ Test a filter group `{logic, filters}` against a document """
    return parse_filter_group(group).evaluate(doc)


class DocFilter(DocQueryHandlerBase):
    """ Filter: criteria, and special filters.

        Handles two keys of the Query Object:
        * 'filter': a filter group
        * 'special_filter': a special filter: {type, ...params}
    """

    query_object_section_name = 'filter'

    def __init__(self, collection, source, force_filters=None, search_as_filter=False, special_filters=None):
        """ Init a filter

        :param force_filters: A filter group that is forcefully ANDed to every query
        :param search_as_filter: Convert `fields` + search `query` into a filter: see merge_search()
        :param special_filters: Special filter classes, by name. Added to the built-in ones.
        :type special_filters: dict[str, type]
        """
        super(DocFilter, self).__init__(collection, source)

        # Config
        self.search_as_filter = search_as_filter
        self.special_filters = {**SPECIAL_FILTERS, **(special_filters or {})}
        self.force_filters = parse_filter_group(force_filters, 'force_filters') if force_filters else None

        # On input
        #: The user's filter group
        self.expression = None  # type: FilterBooleanExpression
        #: The special filter, if any
        self.special = None  # type: Optional[docquery.handlers.special.SpecialFilterBase]
        self.special_input = None

    def input_prepare_query_object(self, query_object):
        """ Pack 'filter' and 'special_filter' into one tuple """
        if 'filter' in query_object or 'special_filter' in query_object:
            query_object['filter'] = (query_object.pop('filter', None),
                                      query_object.pop('special_filter', None))
            if query_object['filter'] == (None, None):
                query_object.pop('filter')
        return query_object

    def input(self, criteria, special_filter=None):
        # DocQuery gives us a tuple (criteria, special_filter)
        if isinstance(criteria, tuple):
            criteria, special_filter = criteria

        super(DocFilter, self).input(criteria)

        self.expression = parse_filter_group(criteria)
        self.special_input = parse_special(special_filter, 'specialFilter')
        self.special = self._init_special(self.special_input)
        return self

    def _init_special(self, params: Optional[dict]):
        if not params:
            return None

        special_cls = self.special_filters.get(params['type'])
        if special_cls is None:
            logger.warning('Unknown special filter type: %r', params['type'])
            return None
        if not special_cls.applies_to(self.collection):
            logger.warning('Special filter %r is not available for collection %r', params['type'], self.collection)
            return None
        return special_cls(params)

    def is_input_empty(self):
        return not self.expression and self.special is None

    def merge(self, criteria):
        """ AND another filter group to the current one """
        extra = parse_filter_group(criteria)
        if not extra:
            return self
        if not self.expression:
            self.expression = extra
        elif self.expression.logic == 'and':
            self.expression.expressions.append(extra)
        else:
            self.expression = FilterBooleanExpression('and', [self.expression, extra])
        return self

    def merge_search(self, fields: List[str], query: str):
        """ Require that at least one of the `fields` contains the search `query`

        Only does something when the `search_as_filter` setting is enabled.
        """
        if not self.search_as_filter or not fields or not query or query.strip() in ('', '*'):
            return self

        return self.merge(dict(
            logic='or',
            filters=[dict(field=field, operator='contains', value=query.strip())
                     for field in fields]
        ))

    def fields(self) -> List[str]:
        """ List the fields that the filters refer to """
        return list(self.expression.fields()) if self.expression else []

    def matches(self, doc: dict) -> bool:
        """ Test a document against the filters """
        if self.force_filters is not None and not self.force_filters.evaluate(doc):
            return False
        return self.expression.evaluate(doc)

    def alter_documents(self, documents):
        """ Apply filters, then the special filter """
        if self.expression or self.force_filters:
            documents = [doc for doc in documents if self.matches(doc)]

        if self.special is not None:
            documents = self.special.filter(documents)

        return documents

    def get_final_input_value(self):
        return self.expression.to_dict()
