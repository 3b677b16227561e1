import inspect
from functools import lru_cache
from typing import Callable, Mapping, Tuple


@lru_cache(100)
def get_function_defaults(for_func: Callable) -> dict:
    """ Get a dict of function's keyword arguments that have default values

        Positional arguments without defaults (`self`, `collection`, `source`) are skipped:
        only the arguments with defaults are handler settings.
    """
    return {
        name: param.default
        for name, param in inspect.signature(for_func).parameters.items()
        if param.default is not inspect.Parameter.empty
        and param.kind in (param.POSITIONAL_OR_KEYWORD, param.KEYWORD_ONLY)
    }


def pluck_kwargs_from(dct: Mapping, for_func: Callable, skip: Tuple[str] = ()) -> dict:
    """ Analyze a function, pluck the arguments it needs from a dict """
    defaults = get_function_defaults(for_func)

    return {k: dct.get(k, default)
            for k, default in defaults.items()
            if k not in skip}
