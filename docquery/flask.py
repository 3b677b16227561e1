""" HTTP endpoints for Flask

    app = Flask(__name__)
    app.register_blueprint(create_blueprint(source), url_prefix='/api')

Endpoints:

* `GET /data?collection=`: all documents of a collection
* `GET /document?collection=&id=`: a single document
* `GET /filtered?collection=&orderBy=createdAt&order=desc&limit=100`: the latest documents
* `GET|POST /search`: the full query, with search defaults (50 per page)
* `GET|POST /fetch`: the full query, with fetch defaults (100 per page). `collection` is required.

Every endpoint answers CORS preflight requests.
Errors are reported as `{success: false, error}`: 400 for invalid input, 404 for missing documents, 500 otherwise.
"""

from logging import getLogger

from flask import Blueprint, request, jsonify, make_response
from flask.views import MethodView
from werkzeug.exceptions import HTTPException

from .exc import InvalidQueryError, ValidationError
from .handlers.limit import parse_int
from .query import DocQuery, SEARCH_SETTINGS, FETCH_SETTINGS
from .source import DocumentSource
from .view import DocQueryViewMixin

logger = getLogger(__name__)


def error_response(error, status: int):
    return jsonify(success=False, error=str(error)), status


def preflight_response(methods: str):
    """ Answer a CORS preflight request """
    response = make_response('', 204)
    response.headers['Access-Control-Allow-Methods'] = methods
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


def request_params() -> dict:
    """ Request parameters: the query string, overridden by the JSON body """
    params = request.args.to_dict()
    if request.method == 'POST':
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            params.update(body)
    return params


class DocQueryView(MethodView, DocQueryViewMixin):
    """ The full query: GET or POST """

    methods = ['GET', 'POST', 'OPTIONS']

    def __init__(self, source: DocumentSource, query_settings, default_collection=None):
        super().__init__()
        self.source = source
        self.query_settings = query_settings
        self.default_collection = default_collection

    def _get_request_params(self):
        return request_params()

    def get(self):
        return jsonify(self._method_query())

    def post(self):
        return jsonify(self._method_query())

    def options(self):
        return preflight_response('GET, POST')


def create_blueprint(source: DocumentSource,
                     search_settings=SEARCH_SETTINGS,
                     fetch_settings=FETCH_SETTINGS,
                     default_collection: str = None,
                     name: str = 'docquery') -> Blueprint:
    """ Create a Flask blueprint with all the endpoints

    :param source: The document store
    :param search_settings: DocQuery settings for /search
    :param fetch_settings: DocQuery settings for /fetch
    :param default_collection: The collection to use when the request does not name one.
        Does not apply to /fetch.
    :param name: Blueprint name
    """
    bp = Blueprint(name, __name__)

    def get_collection(params: dict) -> str:
        collection = params.get('collection') or default_collection
        if not collection:
            raise ValidationError('Collection name is required')
        return collection

    @bp.after_request
    def add_cors_headers(response):
        response.headers['Access-Control-Allow-Origin'] = '*'
        return response

    @bp.errorhandler(InvalidQueryError)
    def handle_invalid_query(e):
        return error_response(e, 400)

    @bp.errorhandler(Exception)
    def handle_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception('Request failed: %s', e)
        return error_response(e, 500)

    @bp.route('/data', methods=['GET', 'OPTIONS'])
    def get_data():
        if request.method == 'OPTIONS':
            return preflight_response('GET')

        collection = get_collection(request_params())
        data = source.scan(collection)
        if not data:
            return jsonify(success=True, message='No documents found', data=[])
        return jsonify(success=True, count=len(data), data=data)

    @bp.route('/document', methods=['GET', 'OPTIONS'])
    def get_document():
        if request.method == 'OPTIONS':
            return preflight_response('GET')

        params = request_params()
        collection = get_collection(params)
        if not params.get('id'):
            return error_response('Document ID is required', 400)

        doc = source.get(collection, params['id'])
        if doc is None:
            return error_response('Document not found', 404)
        return jsonify(success=True, data=doc)

    @bp.route('/filtered', methods=['GET', 'OPTIONS'])
    def get_filtered():
        if request.method == 'OPTIONS':
            return preflight_response('GET')

        params = request_params()
        order = 'asc' if params.get('order') == 'asc' else 'desc'
        result = DocQuery(source, get_collection(params), fetch_settings).query(
            sort=[dict(field=params.get('orderBy') or 'createdAt', order=order)],
            limit=parse_int(params.get('limit')) or 100,
        ).end()
        return jsonify(success=True, count=result.count, data=result.documents)

    bp.add_url_rule('/search', view_func=DocQueryView.as_view(
        'search', source=source, query_settings=search_settings, default_collection=default_collection))
    bp.add_url_rule('/fetch', view_func=DocQueryView.as_view(
        'fetch', source=source, query_settings=fetch_settings))

    return bp
