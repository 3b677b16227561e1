from copy import copy
from logging import getLogger
from typing import List, Optional

from . import handlers
from .exc import InvalidQueryError, UpstreamError
from .source import DocumentSource
from .util import DocQuerySettingsHandler, DocQuerySettingsDict

logger = getLogger(__name__)


class QueryResult:
    """ The result of a DocQuery: the page of documents, and everything there is to report about it """

    def __init__(self, documents: List[dict], total_documents: int, filtered_documents: int, pagination: dict,
                 outcomes=(), searchable_fields=(), search_terms=(), search_query: str = None):
        #: The documents: the current page
        self.documents = documents
        #: The number of documents in the collection
        self.total_documents = total_documents
        #: The number of documents that have passed the filters
        self.filtered_documents = filtered_documents
        #: Pagination state
        self.pagination = pagination
        #: Population outcomes
        self.outcomes = list(outcomes)  # type: List[handlers.PopulateOutcome]
        #: Fields that were searched in; empty when there was no search
        self.searchable_fields = list(searchable_fields)  # type: List[handlers.RelationField]
        #: Search terms; empty when there was no search
        self.search_terms = list(search_terms)
        #: The search query, as given
        self.search_query = search_query

    @property
    def count(self) -> int:
        return len(self.documents)

    @property
    def is_search(self) -> bool:
        """ Did the query rank documents by relevance? """
        return bool(self.search_terms)

    @property
    def is_collection_empty(self) -> bool:
        return self.total_documents == 0

    def __repr__(self):
        return 'QueryResult(count={}, total={})'.format(self.count, self.total_documents)


class DocQuery:
    """ Queries on a collection of documents """

    def __init__(self, source: DocumentSource, collection: str, handler_settings=None):
        """ Init a query

        :param source: The document store to load documents from
        :param collection: Name of the collection to query
        :param handler_settings: Settings for Query Object handlers.
            These are just plain kwargs names for every handler object's __init__ method.
            Note that you don't have to specify which object receives which kwarg:
            the `DocQuerySettingsHandler` object does that automatically.

            To disable a handler, give its name mapped to a `False`.
            Example:

                populate_enabled=False

            See DocQuerySettingsDict for the list of all settings.

        :type handler_settings: dict | DocQuerySettingsDict | None
        """
        self.source = source
        self.collection = collection

        # Initialize the settings
        self._handler_settings = DocQuerySettingsHandler(handler_settings or {})

        # Get ready: Query object handlers
        self._init_query_object_handlers()

        # Settings of the pipeline itself
        pipeline_settings = self._handler_settings.get_kwargs('docquery', DocQuery._pipeline_settings)
        self.populate_before_filter = pipeline_settings['populate_before_filter']
        assert self.populate_before_filter in ('auto', True, False)

        # Check settings
        self._handler_settings.raise_if_invalid_handler_settings(self, self.HANDLER_NAMES)

    def __copy__(self):
        """ DocQuery can be reused: wrap it with Reusable() which performs the automatic copy()

            This method implements proper copying: every handler is copied too.
        """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)

        # Copy Query Object handlers
        for name in self.HANDLER_ATTR_NAMES:
            setattr(result, name, copy(getattr(result, name)))

        return result

    def query(self, **query_object):
        """ Build a query from an object

        :param filter: Filter criteria
        :param special_filter: A special filter: {type, ...params}
        :param sort: Sort criteria
        :param special_sort: A special sort: {type, ...params}
        :param include_distance: Keep the fields that the special sort adds
        :param populate: Population steps
        :param query: Search query
        :param fields: Fields to search in
        :param weights: Field weights for the search
        :param min_score: Minimum search score
        :param include_score: Report the search score
        :param page: Page number
        :param limit: Page size
        :param cursor: Continue after this document
        :param project: Fields to return
        :raises InvalidQueryError: unknown Query Object operations provided (extra keys)
        :raises InvalidQueryError: syntax error for any of the Query Object sections
        :raises DisabledError: input given to a disabled handler
        :rtype: DocQuery
        """
        # Prepare Query Object
        for handler_name, handler in self._handlers():
            query_object = handler.input_prepare_query_object(query_object)

        # Check if Query Object keys are all right
        invalid_keys = set(query_object.keys()) - self.HANDLER_NAMES
        if invalid_keys:
            raise InvalidQueryError('Unknown Query Object operations: {}'.format(', '.join(sorted(invalid_keys))))

        # Bind every handler with ourselves
        for handler_name, handler in self._handlers():
            handler.with_docquery(self)

        # Process every field with its method
        # Every handler should be invoked because they may have defaults even when no input was provided
        for handler_name, handler in self._handlers():
            input_value = query_object.get(handler_name, None)

            # Disabled handlers exception
            # But only test that if there actually was any input
            if input_value is not None:
                self._raise_if_handler_is_not_enabled(handler_name)

            handler.input(input_value)

        # Search fields may become a filter
        self.handler_filter.merge_search(self.handler_search.fields, self.handler_search.query)

        # Done
        return self

    def end(self) -> QueryResult:
        """ Run the query: load the collection, and process it

        :raises UpstreamError: failed to load the collection
        :raises PageOutOfRangeError: the requested page does not exist
        """
        documents = self._load()
        total_documents = len(documents)

        # Empty collection: nothing to do
        if not documents:
            return QueryResult([], 0, 0, handlers.DocLimit.empty_pagination(self.handler_limit.limit),
                               search_terms=self.handler_search.terms,
                               search_query=self.handler_search.query)

        # Populate first, if filters need it
        populated = False
        if self.needs_population_before_filter():
            logger.info('Populating collection "%s" before filtering', self.collection)
            documents = self.handler_populate.alter_documents(documents)
            populated = True

        # Filter
        documents = self.handler_filter.alter_documents(documents)
        filtered_documents = len(documents)

        if not self.handler_search.is_input_empty():
            # Search: scores may depend on populated data
            if not populated:
                documents = self.handler_populate.alter_documents(documents)
                populated = True

            # Relevance order; sort criteria go on top of it, and relevance breaks their ties
            documents = self.handler_search.alter_documents(documents)
            if not self.handler_sort.is_input_empty():
                documents = self.handler_sort.alter_documents(documents)
        else:
            # Sorting by populated fields needs them populated
            if not populated and self.handler_populate.refers_to_populated(self.handler_sort.fields()):
                logger.info('Populating collection "%s" before sorting', self.collection)
                documents = self.handler_populate.alter_documents(documents)
                populated = True

            documents = self.handler_sort.alter_documents(documents)

        # Paginate
        page = self.handler_limit.alter_documents(documents)

        # Remove internal fields
        page = self.handler_sort.finalize_documents(page)
        page = self.handler_search.finalize_documents(page)

        # Project, populate what's left
        self.handler_project.keep(*self.handler_populate.source_fields, *self.handler_populate.target_fields)
        page = self.handler_project.alter_documents(page)
        if not populated:
            page = self.handler_populate.alter_documents(page)

        return QueryResult(
            page,
            total_documents=total_documents,
            filtered_documents=filtered_documents,
            pagination=self.handler_limit.pagination,
            outcomes=self.handler_populate.outcomes,
            searchable_fields=self.handler_search.searchable_fields,
            search_terms=self.handler_search.terms,
            search_query=self.handler_search.query,
        )

    def needs_population_before_filter(self) -> bool:
        """ Test whether the whole collection has to be populated before it's filtered

            With 'auto', it's when there's a reverse population step and some filters,
            or when filters refer to populated fields.
        """
        if self.handler_populate.is_input_empty():
            return False
        if self.populate_before_filter != 'auto':
            return bool(self.populate_before_filter)

        filter_fields = self.handler_filter.fields()
        return (
            (self.handler_populate.has_reverse and bool(filter_fields)) or
            self.handler_populate.refers_to_populated(filter_fields)
        )

    def _load(self) -> List[dict]:
        """ Load the whole collection """
        try:
            return self.source.scan(self.collection)
        except Exception as e:
            raise UpstreamError(self.collection, e) from e

    def __repr__(self):
        return 'DocQuery({!r}, {!r})'.format(self.source, self.collection)

    # region Query Object handlers

    # This section initializes every Query Object handler, one per method.
    # Doing it this way enables you to override the way they are initialized, and use a custom query class with
    # custom settings.

    _QO_HANDLER_FILTER = handlers.DocFilter
    _QO_HANDLER_SORT = handlers.DocSort
    _QO_HANDLER_POPULATE = handlers.DocPopulate
    _QO_HANDLER_SEARCH = handlers.DocSearch
    _QO_HANDLER_LIMIT = handlers.DocLimit
    _QO_HANDLER_PROJECT = handlers.DocProject

    HANDLER_NAMES = frozenset(('filter',
                               'sort',
                               'populate',
                               'search',
                               'limit',
                               'project'))
    HANDLER_ATTR_NAMES = frozenset('handler_'+name
                                   for name in HANDLER_NAMES)

    def _handlers(self):
        """ Get the list of all (handler_name, handler) """
        return (
            # Considerations for the input() method:
            # 1. 'filter' and 'sort' before 'limit'
            #    Because 'limit' resolves cursors with the sort criteria
            ('filter', self.handler_filter),
            ('sort', self.handler_sort),
            ('populate', self.handler_populate),
            ('search', self.handler_search),
            ('limit', self.handler_limit),
            ('project', self.handler_project),
        )

    # for IDE completion
    handler_filter = None  # type: handlers.DocFilter
    handler_sort = None  # type: handlers.DocSort
    handler_populate = None  # type: handlers.DocPopulate
    handler_search = None  # type: handlers.DocSearch
    handler_limit = None  # type: handlers.DocLimit
    handler_project = None  # type: handlers.DocProject

    def _init_query_object_handlers(self):
        """ Initialize every Query Object handler """
        for name in self.HANDLER_NAMES:
            # Every handler: name, attr, class
            handler_attr_name = 'handler_' + name
            handler_cls_attr_name = '_QO_HANDLER_' + name.upper()
            handler_cls = getattr(self, handler_cls_attr_name)

            setattr(self, handler_attr_name,
                    self._init_handler(name, handler_cls)
                    )

    def _init_handler(self, handler_name, handler_cls):
        """ Init a handler, and load its settings """
        handler_settings = self._handler_settings.get_settings(handler_name, handler_cls)
        return handler_cls(self.collection, self.source, **handler_settings)

    def _pipeline_settings(self, populate_before_filter='auto'):
        """ Settings of the pipeline itself. Never called: its signature is analyzed. """

    def _raise_if_handler_is_not_enabled(self, handler_name):
        """ Raise an error if a handler is not enabled """
        self._handler_settings.raise_if_not_handler_enabled(self.collection, handler_name)

    # endregion


#: Settings for search endpoints
SEARCH_SETTINGS = DocQuerySettingsDict(default_limit=50)

#: Settings for fetch endpoints
FETCH_SETTINGS = DocQuerySettingsDict(default_limit=100)
