""" Typed comparison of a document value with a filter value

The kind of comparison is decided by the values involved, in this order:

1. Dates: when either side is a date (a native date, a store timestamp, or an ISO 8601 string),
   and both sides can be read as dates.
2. Numbers: when both sides are numbers, or numeric strings.
3. Strings: everything else, compared case-insensitively.

An operator that a kind does not support falls through to the next kind.
For instance, `contains` on two numbers is a substring check on their string forms.
"""

from enum import Enum

from .document import is_timestamp, timestamp_to_datetime, to_datetime, to_millis, to_number, to_text


class Operator(str, Enum):
    """ Filter operators """
    EQ = 'eq'
    NE = 'ne'
    GT = 'gt'
    GTE = 'gte'
    LT = 'lt'
    LTE = 'lte'
    IN = 'in'
    CONTAINS = 'contains'
    STARTS_WITH = 'startsWith'
    ENDS_WITH = 'endsWith'
    BETWEEN = 'between'

    @classmethod
    def lookup(cls, name):
        """ Get an operator by name

        :raises ValueError: unknown operator
        """
        if isinstance(name, cls):
            return name
        return cls(name)


# Operators that order values: dates and numbers support these
_ordering_operators = {
    Operator.EQ:  lambda a, b: a == b,
    Operator.NE:  lambda a, b: a != b,
    Operator.GT:  lambda a, b: a > b,
    Operator.GTE: lambda a, b: a >= b,
    Operator.LT:  lambda a, b: a < b,
    Operator.LTE: lambda a, b: a <= b,
}

# Operators on strings
_string_operators = {
    **_ordering_operators,
    Operator.CONTAINS:    lambda a, b: b in a,
    Operator.STARTS_WITH: lambda a, b: a.startswith(b),
    Operator.ENDS_WITH:   lambda a, b: a.endswith(b),
}

# A missing value is "less than everything"
_operators_matching_missing = frozenset((Operator.NE, Operator.LT, Operator.LTE))


def compare_values(doc_value, operator, filter_value, filter_value2=None) -> bool:
    """ Compare a document value with a filter value

    :param doc_value: The value from the document
    :param operator: Operator, or its name
    :param filter_value: The value to compare to
    :param filter_value2: The upper bound, for `between`
    :return: bool. Unknown operators never match.
    """
    try:
        operator = Operator.lookup(operator)
    except ValueError:
        return False

    # Missing values
    if doc_value is None:
        return operator in _operators_matching_missing

    # Timestamps are dates
    if is_timestamp(doc_value):
        doc_value = timestamp_to_datetime(doc_value)

    # Dates
    result = _compare_dates(doc_value, operator, filter_value, filter_value2)
    if result is not None:
        return result

    # Numbers
    result = _compare_numbers(doc_value, operator, filter_value, filter_value2)
    if result is not None:
        return result

    # Strings
    return _compare_strings(doc_value, operator, filter_value)


def _compare_dates(doc_value, operator, filter_value, filter_value2):
    """ Compare as dates. Returns None when the values are not dates, or the operator is not for dates. """
    doc_date = to_datetime(doc_value)
    filter_date = to_datetime(filter_value)

    # Either side has to be a date, and both have to be readable as dates
    if doc_date is None or filter_date is None:
        return None

    a, b = to_millis(doc_date), to_millis(filter_date)
    if operator in _ordering_operators:
        return _ordering_operators[operator](a, b)
    if operator == Operator.BETWEEN:
        upper = to_datetime(filter_value2) if filter_value2 else None
        if upper is None:
            return False
        return b <= a <= to_millis(upper)
    return None


def _compare_numbers(doc_value, operator, filter_value, filter_value2):
    """ Compare as numbers. Returns None when the values are not numeric, or the operator is not for numbers. """
    a = to_number(doc_value)
    b = to_number(filter_value)
    if a is None or b is None:
        return None

    if operator in _ordering_operators:
        return _ordering_operators[operator](a, b)
    if operator == Operator.BETWEEN:
        upper = to_number(filter_value2) if filter_value2 is not None else None
        if upper is None:
            return False
        return b <= a <= upper
    return None


def _compare_strings(doc_value, operator, filter_value) -> bool:
    """ Compare as case-insensitive strings """
    doc_str = to_text(doc_value).lower()

    if operator == Operator.IN:
        if isinstance(filter_value, (list, tuple, set, frozenset)):
            return any(to_text(v).lower() == doc_str for v in filter_value)
        return False

    if operator in _string_operators:
        return _string_operators[operator](doc_str, to_text(filter_value).lower())

    return False
