from typing import Iterable

from .inspect import pluck_kwargs_from
from ..exc import DisabledError


class DocQuerySettingsHandler:
    """ Settings keeper for DocQuery

        DocQuery handlers receive settings as kwargs to their __init__() methods,
        and those kwargs have unique names.

        This class keeps all settings as a single, flat dict,
        and gives each handler only the settings it wants.
        Settings that no handler wants are typos, and are reported.
    """

    def __init__(self, settings: dict):
        """ Store the settings for every handler

            :param settings: dict of handler kwargs
        """
        assert isinstance(settings, dict)

        #: Settings dict
        self._settings = settings  # not copied: never modified

        #: Handler names
        self._handler_names = set()

        #: kwarg names for every handler: dict[handler] = set()
        self._handler_kwargs_names = {}

        #: all kwargs names (to identify invalid ones)
        self._all_known_kwargs_names = set()

        #: disabled handler names
        self._disabled_handlers = set()

    def get_settings(self, handler_name: str, handler_cls: type) -> dict:
        """ Get settings for the given handler

            The handler's __init__() is analyzed: every keyword argument with a default value is a setting.
            Matching keys are taken from the settings dict; the rest come from argument defaults.

            In addition to that, `<handler_name>_enabled=False` disables the handler:
            is_handler_enabled() will later tell that to DocQuery.
        """
        if not self._settings.get('{}_enabled'.format(handler_name), True):
            self._disabled_handlers.add(handler_name)

        return self.get_kwargs(handler_name, handler_cls.__init__)

    def get_kwargs(self, name: str, for_func) -> dict:
        """ Pluck settings for any function: the way DocQuery gets its own settings """
        kwargs = pluck_kwargs_from(self._settings, for_func=for_func)

        self._handler_kwargs_names[name] = set(kwargs)
        self._all_known_kwargs_names.update(kwargs)
        return kwargs

    def is_handler_enabled(self, handler_name: str) -> bool:
        """ Test if the handler is enabled in the configuration """
        return handler_name not in self._disabled_handlers

    def raise_if_not_handler_enabled(self, collection: str, handler_name: str):
        """ Raise an error if the handler is not enabled """
        if not self.is_handler_enabled(handler_name):
            raise DisabledError('Query handler "{}" is disabled for "{}"'
                                .format(handler_name, collection))

    def raise_if_invalid_handler_settings(self, docquery, handler_names: Iterable[str]):
        """ Check whether there were any typos in setting names

            After all handlers were initialized, all their keyword arguments are known.
            Every key of the settings dict must be one of them.

            :raises: KeyError: Invalid settings provided
        """
        known_keys = set('{}_enabled'.format(name) for name in handler_names)
        known_keys |= self._all_known_kwargs_names

        invalid_keys = set(self._settings) - known_keys
        if invalid_keys:
            raise KeyError('Invalid settings were provided for {!r}: {}'
                           .format(docquery, ','.join(sorted(invalid_keys))))

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self._settings)
