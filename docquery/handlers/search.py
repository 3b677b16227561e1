"""
### Search Operation

Full-text search ranks documents by how well their fields match the search terms.

```javascript
$.get('/api/search?' + $.param({
    query: 'hair salon',
    fields: 'name,description,categories.label',  // optional: where to look
    weights: JSON.stringify({ name: 3 }),  // optional: field weights
    minScore: 10,  // optional
}))
```

The query is split into terms by whitespace. Every term is looked for in every searchable field, and scores:

* 100: the value equals the term
* 50: the value starts with the term
* 25: the value contains the term
* +15: the term is a whole word in the value
* +2 for every term after it: earlier terms are more important

Scores are multiplied by the field weight.
Documents that score no more than `minScore` are dropped; the rest are ordered by score, best first.

When `fields` are not given, searchable fields are discovered from the documents themselves:
strings, numbers and booleans, nested objects and arrays included.
Nested fields weigh less than top-level ones.

The query `*` means "no search": all documents are returned.
"""

import re
from typing import Iterable, List, Mapping, Optional

from .base import DocQueryHandlerBase
from ..document import is_scalar, is_timestamp, to_number, to_text
from ..exc import InvalidQueryError
from ..path import get_path, flatten_value
from ..util.params import decode_if_string


#: The field the score is reported in
SCORE_FIELD = '_relevanceScore'


class RelationField:
    """ A searchable field, with its weight """

    __slots__ = ('path', 'weight')

    def __init__(self, path: str, weight: float = 1.0):
        self.path = path
        self.weight = weight

    def __eq__(self, other):
        return isinstance(other, RelationField) and (self.path, self.weight) == (other.path, other.weight)

    def __repr__(self):
        return 'RelationField({!r}, {})'.format(self.path, self.weight)


def tokenize(query: str) -> List[str]:
    """ Split a search query into terms """
    return (query or '').lower().split()


def discover_searchable_paths(documents: Iterable[dict], max_depth: int = 3) -> List[str]:
    """ Find the paths of all searchable values in the documents

    Skipped: `id`, keys that start with `_`, dates and timestamps.
    """
    paths = []

    def add(path):
        if path not in paths:
            paths.append(path)

    def walk(obj: Mapping, prefix: str, depth: int):
        if depth > max_depth or is_timestamp(obj):
            return

        for key, value in obj.items():
            if key == 'id' or key.startswith('_') or value is None or is_timestamp(value):
                continue

            path = '{}.{}'.format(prefix, key) if prefix else key
            if is_scalar(value):
                add(path)
            elif isinstance(value, Mapping):
                walk(value, path, depth + 1)
            elif isinstance(value, (list, tuple)):
                items = flatten_value(value)
                if any(is_scalar(item) for item in items):
                    add(path)
                for item in items:
                    if isinstance(item, Mapping):
                        walk(item, path, depth + 1)

    for doc in documents:
        walk(doc, '', 0)
    return paths


def extract_searchable_fields(documents: Iterable[dict], max_depth: int = 3,
                              relation_weight: float = 0.8) -> List[RelationField]:
    """ Discover searchable fields. Top-level fields weigh 1.0; nested ones weigh `relation_weight` """
    return [RelationField(path, relation_weight if '.' in path else 1.0)
            for path in discover_searchable_paths(documents, max_depth)]


def score_document(doc: dict, terms: List[str], fields: List[RelationField]) -> float:
    """ Compute the relevance score of a document """
    score = 0
    n_terms = len(terms)
    word_patterns = [re.compile(r'\b{}\b'.format(re.escape(term))) for term in terms]

    for field in fields:
        for value in flatten_value(get_path(doc, field.path)):
            if not is_scalar(value):
                continue
            text = to_text(value).lower()

            for index, term in enumerate(terms):
                if text == term:
                    score += 100 * field.weight
                elif text.startswith(term):
                    score += 50 * field.weight
                elif term in text:
                    score += 25 * field.weight

                if word_patterns[index].search(text):
                    score += 15 * field.weight

                # Earlier terms matter more
                if term in text:
                    score += (n_terms - index) * 2 * field.weight

    return score


def parse_fields(fields) -> List[str]:
    """ Parse a list of fields: a list, or a comma-separated string """
    if not fields:
        return []
    if isinstance(fields, str):
        fields = fields.split(',')
    if not isinstance(fields, (list, tuple)):
        raise InvalidQueryError('fields must be either a list, or a comma-separated string')
    return [f.strip() for f in fields if isinstance(f, str) and f.strip()]


def parse_weights(weights) -> dict:
    """ Parse field weights: an object, or its JSON string """
    weights = decode_if_string(weights, 'weights')
    if not weights:
        return {}
    if not isinstance(weights, Mapping):
        raise InvalidQueryError('weights must be an object')

    ret = {}
    for path, weight in weights.items():
        weight = to_number(weight)
        if weight is None:
            raise InvalidQueryError('weights: the weight of {!r} must be a number'.format(path))
        ret[path] = weight
    return ret


class DocSearch(DocQueryHandlerBase):
    """ Full-text search

        Handles these keys of the Query Object:
        * 'query': the search query
        * 'fields': fields to search in
        * 'weights': field weights
        * 'min_score': the minimum score
        * 'include_score': report the score in every document
    """

    query_object_section_name = 'search'

    #: Query Object keys packed into the 'search' section
    _packed_keys = ('query', 'fields', 'weights', 'min_score', 'include_score')

    def __init__(self, collection, source, max_depth=3, relation_weight=0.8, min_score=0):
        """ Init search

        :param max_depth: How deep to look for searchable fields
        :param relation_weight: The weight of nested fields that were discovered
        :param min_score: The minimum score. The user can raise it, but not lower it.
        """
        super(DocSearch, self).__init__(collection, source)

        # Config
        self.max_depth = max_depth
        self.relation_weight = relation_weight
        self.default_min_score = min_score

        # On input
        self.query = None
        self.terms = []
        self.fields = []
        self.weights = {}
        self.min_score = min_score
        self.include_score = False

        # After search
        #: Fields that were searched in
        self.searchable_fields = []  # type: List[RelationField]

    def input_prepare_query_object(self, query_object):
        """ Pack all search keys into one dict """
        search = {k: query_object.pop(k) for k in self._packed_keys if k in query_object}
        if search:
            query_object['search'] = search
        return query_object

    def input(self, search: Optional[dict]):
        super(DocSearch, self).input(search)
        search = search or {}
        if isinstance(search, str):
            search = dict(query=search)

        self.query = (search.get('query') or '').strip() or None
        self.terms = tokenize(self.query) if not self.return_all else []
        self.fields = parse_fields(search.get('fields'))
        self.weights = parse_weights(search.get('weights'))
        self.include_score = bool(search.get('include_score'))

        min_score = to_number(search.get('min_score')) if search.get('min_score') is not None else None
        self.min_score = max(self.default_min_score, min_score or 0)
        return self

    @property
    def return_all(self) -> bool:
        """ Is it the "return everything" query: `*`? """
        return self.query == '*'

    def is_input_empty(self):
        return not self.terms

    def get_searchable_fields(self, documents: List[dict]) -> List[RelationField]:
        """ Get the fields to search in: the given ones, or discovered from the documents """
        if self.fields:
            fields = [RelationField(path, 1.0) for path in self.fields]
        else:
            fields = extract_searchable_fields(documents, self.max_depth, self.relation_weight)

        for field in fields:
            if field.path in self.weights:
                field.weight = self.weights[field.path]
        return fields

    def score(self, doc: dict) -> float:
        """ Compute the relevance score of a document """
        return score_document(doc, self.terms, self.searchable_fields)

    def alter_documents(self, documents):
        """ Score documents, drop the irrelevant ones, order by relevance """
        if not self.terms:
            return documents

        self.searchable_fields = self.get_searchable_fields(documents)

        for doc in documents:
            doc[SCORE_FIELD] = self.score(doc)

        documents = [doc for doc in documents if doc[SCORE_FIELD] > self.min_score]
        return sorted(documents, key=lambda doc: doc[SCORE_FIELD], reverse=True)

    def finalize_documents(self, documents):
        """ Remove the score, unless the user wants it """
        if not self.include_score:
            for doc in documents:
                doc.pop(SCORE_FIELD, None)
        return documents

    def get_final_input_value(self):
        return self.query
