""" Dot-notation field paths

A field path addresses a value inside a nested document:

    'address.city'  # -> doc['address']['city']
    'items[0].name'  # -> doc['items'][0]['name']

When an array is met in the middle of a path, the rest of the path is resolved
against *every* element of that array, and the results are collected into a list:

    get_path({'categories': [{'key': 'hair'}, {'key': 'spa'}]}, 'categories.key')
    #-> ['hair', 'spa']
"""

import re
from typing import Any, List, Mapping, Tuple, Union


class _MISSING_TYPE:
    """ A falsy marker for paths that resolve to nothing """
    def __repr__(self):
        return 'MISSING'
    def __bool__(self):
        return False


MISSING = _MISSING_TYPE()  # A falsy marker: the path does not exist in the document


_INDEXED_SEGMENT = re.compile(r'^(.+)\[(\d+)\]$')


def split_path(path: str) -> List[str]:
    """ Split a field path into segments """
    return path.split('.')


def _parse_segment(segment: str) -> Tuple[str, Union[int, None]]:
    """ Parse a segment: 'name' -> ('name', None), 'name[1]' -> ('name', 1) """
    m = _INDEXED_SEGMENT.match(segment)
    if m:
        return m.group(1), int(m.group(2))
    return segment, None


def _get_key(current, key: str):
    if isinstance(current, Mapping):
        return current.get(key, MISSING)
    return MISSING


def get_path(doc: Any, path: str) -> Any:
    """ Get a value by its dotted path

    :param doc: The document (or any nested value) to look into
    :param path: Field path, e.g. 'address.city', or 'items[0].name'
    :return: The value, a list of values (fan-out over arrays), or MISSING
    """
    return _get_segments(doc, split_path(path))


def _get_segments(current, segments: List[str]):
    for i, segment in enumerate(segments):
        if current is None or current is MISSING:
            return MISSING

        name, index = _parse_segment(segment)
        current = _get_key(current, name)

        # 'name[idx]' indexes into an array. Anything else is left as is.
        if index is not None and isinstance(current, list):
            current = current[index] if index < len(current) else MISSING

        # An array in the middle of the path: resolve the rest against every element
        if isinstance(current, list) and i < len(segments) - 1:
            remaining = segments[i + 1:]
            values = [_get_segments(item, remaining)
                      for item in current
                      if item is not None]
            values = [v for v in values if v is not MISSING]
            return values if values else MISSING

    return current


def set_path(doc: dict, path: str, value: Any) -> dict:
    """ Set a value by its dotted path, creating intermediate objects on the way.

    Paths are walked the way `get_path()` walks them:

    * 'name[idx]' indexes into an array; a short array is padded up to `idx`
    * an array in the middle of the path gets the rest of the path set on every element that is an object
    * an existing scalar in the middle of the path is left alone, and nothing is set under it

    Modifies `doc` in place.
    """
    _set_segments(doc, split_path(path), value)
    return doc


def _set_segments(current: dict, segments: List[str], value: Any):
    name, index = _parse_segment(segments[0])
    is_last = len(segments) == 1

    if index is not None:
        array = current.get(name)
        if array is None or array is MISSING:
            array = current[name] = []
        if not isinstance(array, list):
            return
        while len(array) <= index:
            array.append(None)
        if is_last:
            array[index] = value
            return
        if array[index] is None:
            array[index] = {}
        nested = array[index]
    elif is_last:
        current[name] = value
        return
    else:
        nested = current.get(name)
        if nested is None or nested is MISSING:
            nested = current[name] = {}

    if isinstance(nested, Mapping):
        _set_segments(nested, segments[1:], value)
    elif isinstance(nested, list):
        for item in nested:
            if isinstance(item, Mapping):
                _set_segments(item, segments[1:], value)


def has_path(doc: Any, path: str) -> bool:
    """ Test whether the path resolves to anything """
    return get_path(doc, path) is not MISSING


def flatten_value(value: Any) -> list:
    """ Flatten a value into a list of values.

        Nested lists are flattened recursively; None and MISSING are dropped.
        Mappings (and timestamps) are kept as they are.
    """
    if value is None or value is MISSING:
        return []
    if isinstance(value, (list, tuple)):
        return [v
                for item in value
                for v in flatten_value(item)]
    return [value]
