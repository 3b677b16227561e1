from typing import Mapping

from .document import to_number
from .exc import ValidationError
from .handlers.limit import parse_int
from .query import DocQuery, QueryResult, SEARCH_SETTINGS
from .source import DocumentSource


#: Request parameters, and the Query Object keys they go to
REQUEST_PARAMS_MAP = (
    ('filters', 'filter'),
    ('sort', 'sort'),
    ('sortBy', 'sort'),
    ('specialFilter', 'special_filter'),
    ('specialSort', 'special_sort'),
    ('populate', 'populate'),
    ('query', 'query'),
    ('q', 'query'),
    ('fields', 'fields'),
    ('weights', 'weights'),
    ('page', 'page'),
    ('cursor', 'cursor'),
    ('select', 'project'),
)


def is_true(value) -> bool:
    """ A boolean request parameter: `true`, or 'true' """
    return value is True or value == 'true'


def query_object_from_params(params: Mapping) -> dict:
    """ Convert request parameters into a Query Object

        Parameters that are not given, or are empty, are left out: handlers use their defaults.
    """
    query_object = {}
    for param_name, key in REQUEST_PARAMS_MAP:
        value = params.get(param_name)
        if value is not None and value != '' and key not in query_object:
            query_object[key] = value

    # Numbers: junk means "not given"
    limit = parse_int(params.get('limit'))
    if limit is not None:
        query_object['limit'] = limit

    min_score = to_number(params.get('minScore'))
    if min_score is not None:
        query_object['min_score'] = min_score

    # Flags
    if is_true(params.get('includeScore')):
        query_object['include_score'] = True
    if is_true(params.get('includeDistance')):
        query_object['include_distance'] = True

    return query_object


def response_envelope(docquery: DocQuery, result: QueryResult) -> dict:
    """ Format the response for a query: the page of documents, and everything there is to know about it """
    search = docquery.handler_search

    ret = dict(
        success=True,
        collection=docquery.collection,
        count=result.count,
        totalDocuments=result.total_documents,
        filteredDocuments=result.filtered_documents,
        data=result.documents,
        pagination=result.pagination,
        filters=docquery.handler_filter.get_final_input_value(),
        sort=docquery.handler_sort.get_final_input_value(),
        populate=docquery.handler_populate.get_final_input_value(),
        specialFilter=docquery.handler_filter.special_input,
        specialSort=docquery.handler_sort.special_input,
        returnAll=search.return_all,
    )

    if result.is_collection_empty:
        ret['message'] = 'No documents found in collection'

    if search.query and not search.return_all:
        ret['searchQuery'] = search.query
        ret['searchTerms'] = result.search_terms
    if result.is_search:
        ret['searchableFields'] = [field.path for field in result.searchable_fields]

    if result.outcomes:
        ret['populateOutcomes'] = [outcome.to_dict() for outcome in result.outcomes]

    return ret


class DocQueryViewMixin:
    """ A mixin class for views that run DocQuery on request parameters.

        This class is supposed to be re-initialized for every request.

        To implement a view:
        1. Set `source` at the class level
        2. Implement the `_get_request_params()` method
        3. Optionally, set `query_settings` for the handlers
        4. Use `_method_query()` to run the query and get the response

        For an example, see docquery.flask
    """

    #: The document store
    source = None  # type: DocumentSource

    #: Settings for DocQuery handlers
    query_settings = SEARCH_SETTINGS

    #: The collection to use when the request does not name one. None makes the `collection` parameter required.
    default_collection = None

    def __init__(self):
        #: The DocQuery for this request, if it was indeed initialized by _docquery()
        self._docquery = None  # type: DocQuery

    def _get_request_params(self) -> Mapping:
        """ (Abstract method) Get the parameters of the current request: query string, or body """
        raise NotImplementedError('_get_request_params() not implemented on {}'
                                  .format(type(self)))

    def _get_collection(self) -> str:
        """ Get the name of the collection to query

            :raises ValidationError: no collection given
        """
        collection = self._get_request_params().get('collection') or self.default_collection
        if not collection or not isinstance(collection, str):
            raise ValidationError('Collection name is required')
        return collection

    def _get_query_object(self) -> dict:
        """ Get the Query Object for the current request """
        return query_object_from_params(self._get_request_params())

    def _make_docquery(self, collection: str) -> DocQuery:
        """ Init a DocQuery for the collection. Override to customize settings per collection. """
        return DocQuery(self.source, collection, self.query_settings)

    def _method_query(self) -> dict:
        """ Run the query, format the response

            :raises InvalidQueryError: invalid input
            :raises UpstreamError: failed to load the collection
        """
        collection = self._get_collection()
        self._docquery = self._make_docquery(collection).query(**self._get_query_object())
        result = self._docquery.end()
        return response_envelope(self._docquery, result)
