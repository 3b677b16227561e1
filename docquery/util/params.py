""" Request parameters arrive as JSON strings, or as already decoded values """

import json
from logging import getLogger

logger = getLogger(__name__)


def json_or_none(value: str, where: str = None):
    """ Decode a JSON string. Malformed JSON gives None.

    :param value: The string to decode
    :param where: Name of the parameter, for the log message
    """
    try:
        return json.loads(value)
    except ValueError:
        if where:
            logger.warning('Malformed JSON in "%s": %r', where, value)
        return None


def decode_if_string(value, where: str = None):
    """ Decode the value if it's a string; return other values as they are """
    if isinstance(value, str):
        return json_or_none(value, where)
    return value
