from typing import Iterable, Mapping, Union

from .inspect import pluck_kwargs_from


class DocQuerySettingsDict(dict):
    """ DocQuery settings container.

        Is mostly used for nice autocompletion and documentation purposes.

        The keyword settings in this object are just plain kwargs names
        for every handler object's __init__ method,
        which are fed to subclasses of DocQueryHandlerBase by DocQuerySettingsHandler.

        In addition to that, there are '<handler-name>_enabled' settings,
        that can enable or disable a handler.
    """

    def __init__(self,
                 # --- filter
                 force_filters: Union[Mapping, list] = None,
                 search_as_filter: bool = False,
                 special_filters: Mapping[str, type] = None,
                 # --- sort
                 special_sorts: Mapping[str, type] = None,
                 distance_epsilon: float = 1e-4,
                 # --- populate
                 batch_size: int = 10,
                 max_workers: int = 4,
                 allowed_collections: Iterable[str] = None,
                 # --- search
                 max_depth: int = 3,
                 relation_weight: float = 0.8,
                 min_score: float = 0,
                 # --- limit
                 default_limit: int = 100,
                 max_items: int = None,
                 # --- project
                 force_exclude: Iterable[str] = None,
                 # --- pipeline
                 populate_before_filter: Union[str, bool] = 'auto',
                 # --- enabled handlers?
                 filter_enabled: bool = True,
                 sort_enabled: bool = True,
                 populate_enabled: bool = True,
                 search_enabled: bool = True,
                 limit_enabled: bool = True,
                 project_enabled: bool = True,
                 ):
        """ DocQuery settings

        Args:
            force_filters (dict | list): (for: filter)
                A filter group that is ANDed to every query. Use it to hide documents: e.g. `isDeleted ne true`.
            search_as_filter (bool): (for: filter)
                When `fields` and a search `query` are both given, also require that one of the `fields`
                contains the query: an OR group of `contains` criteria is ANDed to the filters.
            special_filters (dict): (for: filter)
                Extra special filter classes, by name. They override the built-in ones.
            special_sorts (dict): (for: sort)
                Extra special sort classes, by name. They override the built-in ones.
            distance_epsilon (float): (for: sort)
                Distances (km) that differ by no more than this are ties, and fall through to the regular sort.
            batch_size (int): (for: populate)
                The number of ids per lookup request to the document store.
            max_workers (int): (for: populate)
                The number of lookup requests that run concurrently.
            allowed_collections (list[str]): (for: populate)
                Collections that can be populated from. `None` means any.
            max_depth (int): (for: search)
                How deep to look for searchable fields in nested objects.
            relation_weight (float): (for: search)
                The weight of nested (related) fields discovered automatically.
            min_score (float): (for: search)
                Documents that score no higher than that are dropped. The user can raise it, not lower it.
            default_limit (int): (for: limit)
                Page size when the user does not give one.
            max_items (int): (for: limit)
                The maximum page size the user can request.
            force_exclude (list[str]): (for: project)
                Top-level fields that are never returned, even when requested explicitly.
            populate_before_filter ('auto' | bool): (for: DocQuery)
                Populate the whole collection before filtering: when filters refer to populated data.
                'auto' decides based on the input.
        """
        super(DocQuerySettingsDict, self).__init__()
        self.update({k: v
                     for k, v in locals().items()
                     if k not in {'__class__', 'self'}})

    def and_more(self, **settings):
        """ Copy the object and add more settings to it """
        return self.__class__(**{**self, **settings})

    @classmethod
    def pluck_from(cls, dict, skip=()):
        """ Initialize the class by plucking kwargs from a dictionary with configuration for other things too """
        kwargs = pluck_kwargs_from(dict,
                                   for_func=cls.__init__,
                                   skip=skip)
        return cls(**kwargs)
