"""
### Pagination

Results are returned page by page:

```javascript
$.get('/api/search?' + $.param({
    limit: 20,  // 20 items per page
    page: 3,  // the third page: items 41..60
}))
```

* `page`: 1-based page number. Default: 1. A page beyond the last one is an error, unless there are no results at all.
* `limit`: page size. Default: depends on the endpoint. It can never go higher than the configured maximum.

Every response reports the pagination state:
`{page, limit, totalPages, totalResults, hasNextPage, hasPrevPage, nextPage, prevPage, startIndex, endIndex, nextCursor}`.

#### Cursor

When documents are added or removed between requests, page numbers drift.
A cursor continues right after a known document instead:

```javascript
$.get('/api/search?' + $.param({
    sort: 'createdAt:desc',
    limit: 20,
    cursor: 'doc-id',  // the `nextCursor` from the previous response
}))
```

The cursor is the id of the last document of the previous page.
When that document is no longer in the results, the sort keys of its stored copy tell where to continue.
An unknown cursor is ignored.
"""

import math
from logging import getLogger
from typing import List, Optional

from .base import DocQueryHandlerBase
from .sort import compare_by_criteria
from ..exc import InvalidQueryError, ValidationError, PageOutOfRangeError

logger = getLogger(__name__)


def parse_int(value) -> Optional[int]:
    """ Parse an integer the lenient way: '10' and 10.0 are fine; junk gives None """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class DocLimit(DocQueryHandlerBase):
    """ Pagination: pages, page size, and cursors

        Handles three keys of the Query Object:
        * 'page': 1-based page number
        * 'limit': page size
        * 'cursor': id of the document to continue after
    """

    query_object_section_name = 'limit'

    def __init__(self, collection, source, default_limit=100, max_items=None):
        """ Init pagination

        :param default_limit: Page size when the user does not give one
        :param max_items: The maximum page size.
            The user can never go any higher than that.
        """
        super(DocLimit, self).__init__(collection, source)

        # Config
        self.default_limit = default_limit
        self.max_items = max_items
        assert self.default_limit > 0
        assert self.max_items is None or self.max_items > 0

        # On input
        self.page = 1
        self.limit = self._clamp(None)
        self.cursor = None

        # After pagination
        #: The pagination state, as reported to the user
        self.pagination = None  # type: dict

    def input_prepare_query_object(self, query_object):
        """ Alter Query Object

        This handler receives 3 values: 'page', 'limit', 'cursor'.
        DocQuery only supports one key per handler.
        Solution: pack them as a tuple
        """
        if 'page' in query_object or 'limit' in query_object or 'cursor' in query_object:
            query_object['limit'] = (query_object.pop('page', None),
                                     query_object.pop('limit', None),
                                     query_object.pop('cursor', None))
            if query_object['limit'] == (None, None, None):
                query_object.pop('limit')  # remove it if it's actually empty
        return query_object

    def input(self, page=None, limit=None, cursor=None):
        # DocQuery gives us a tuple (page, limit, cursor)
        if isinstance(page, tuple):
            page, limit, cursor = page

        super(DocLimit, self).input((page, limit, cursor))

        # Page: junk means the first page; an explicit number below 1 is an error
        page_number = parse_int(page)
        if page_number is not None and page_number < 1:
            raise ValidationError('Page number must be greater than 0')
        self.page = page_number or 1

        # Limit
        if limit is not None and parse_int(limit) is None:
            raise InvalidQueryError('Limit must be either an integer, or null')
        self.limit = self._clamp(parse_int(limit))

        # Cursor
        if cursor is not None and not isinstance(cursor, str):
            raise InvalidQueryError('Cursor must be a document id')
        self.cursor = cursor or None
        return self

    def _clamp(self, limit: Optional[int]) -> int:
        limit = self.default_limit if limit is None or limit <= 0 else limit
        if self.max_items:
            limit = min(self.max_items, limit)
        return limit

    def is_input_empty(self):
        return self.input_value is None or self.input_value == (None, None, None)

    def alter_documents(self, documents):
        """ Pick the current page """
        criteria = self.docquery.handler_sort.criteria if self.docquery is not None else []
        return self.paginate(documents, criteria)

    def paginate(self, documents: List[dict], sort_criteria: List[dict] = ()) -> List[dict]:
        """ Pick the current page, and compute the pagination state

        :param documents: Sorted documents
        :param sort_criteria: The sort criteria the documents are sorted with. Used to resolve cursors.
        :raises PageOutOfRangeError: The page does not exist
        """
        total = len(documents)
        total_pages = math.ceil(total / self.limit)

        start = self.resolve_cursor(documents, sort_criteria) if self.cursor else None
        if start is not None:
            page = start // self.limit + 1
        else:
            page = self.page
            if page > total_pages and total > 0:
                raise PageOutOfRangeError(page, total_pages)
            start = (page - 1) * self.limit

        end = start + self.limit
        page_documents = documents[start:end]
        has_next_page = end < total

        self.pagination = dict(
            page=page,
            limit=self.limit,
            totalPages=total_pages,
            totalResults=total,
            hasNextPage=has_next_page,
            hasPrevPage=start > 0,
            nextPage=page + 1 if has_next_page else None,
            prevPage=page - 1 if page > 1 else None,
            startIndex=start + 1,
            endIndex=min(end, total),
            nextCursor=page_documents[-1].get('id') if has_next_page and page_documents else None,
        )
        return page_documents

    def resolve_cursor(self, documents: List[dict], sort_criteria: List[dict]) -> Optional[int]:
        """ Find the index to continue from

        :return: The index of the first document after the cursor, or None when the cursor can't be used
        """
        # The cursor document is still there
        for i, doc in enumerate(documents):
            if doc.get('id') == self.cursor:
                return i + 1

        # It's gone: continue after its sort keys
        cursor_doc = self.source.get(self.collection, self.cursor)
        if cursor_doc is None:
            logger.warning('Unknown cursor %r for collection "%s": ignored', self.cursor, self.collection)
            return None
        if not sort_criteria:
            logger.warning('Cursor %r can not be used without a sort: ignored', self.cursor)
            return None

        for i, doc in enumerate(documents):
            if compare_by_criteria(doc, cursor_doc, sort_criteria) > 0:
                return i
        return len(documents)

    @staticmethod
    def empty_pagination(limit: int) -> dict:
        """ The pagination state of an empty collection """
        return dict(page=1, limit=limit, totalPages=0, totalResults=0,
                    hasNextPage=False, hasPrevPage=False, nextPage=None, prevPage=None,
                    startIndex=0, endIndex=0, nextCursor=None)

    def get_final_input_value(self):
        return dict(page=self.page, limit=self.limit, cursor=self.cursor)
