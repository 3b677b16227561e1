from copy import copy


class Reusable:
    """ Make a handler or a DocQuery reusable

        Handlers and queries accept input() only once: they keep per-request state.
        Settings, however, are parsed at init time, and it's a pity to parse them for every request.

        This wrapper gives out a fresh copy of the wrapped object every time an attribute is accessed:

            search_query = Reusable(DocQuery(source, 'users', SEARCH_SETTINGS))

            search_query.query(filter=...).end()  # a copy
            search_query.query(filter=...).end()  # another copy
    """
    __slots__ = ('__obj',)

    def __init__(self, obj):
        self.__obj = obj

    def __getattr__(self, attr):
        # copy-on-access
        return getattr(copy(self.__obj), attr)

    def __repr__(self):
        return 'Reusable({!r})'.format(self.__obj)
