"""
DocQuery is an in-memory query engine for document stores.

A document store is good at loading documents, and bad at everything else:
it can't join collections, can't search text, can't filter on nested arrays.
DocQuery loads a collection and does all that in memory, driven by a Query Object
that usually comes straight from request parameters:

```javascript
$.get('/api/search?' + $.param({
    collection: 'users',
    filters: JSON.stringify({ field: 'address.city', value: 'Paris' }),  // filter
    query: 'hair salon',  // full-text search
    populate: JSON.stringify([{ link: 'vendorId', collection: 'services' }]),  // load related documents
    sort: 'rating:desc',  // sort
    limit: 20,  // paginate
}))
```

Since every query loads the whole collection, it's meant for collections of a moderate size.
"""

# Exceptions that are used here and there
from .exc import *

# Document stores
from .source import DocumentSource, MemoryDocumentSource

# The heart of DocQuery are the handlers:
# that's where your Query Objects are applied to documents!
from . import handlers

# DocQuery is the man that parses your Query Object and runs every handler
from .query import DocQuery, QueryResult, SEARCH_SETTINGS, FETCH_SETTINGS

# Request parameters and responses
from .view import DocQueryViewMixin, query_object_from_params, response_envelope

# Helpers
# Reusable query objects (so that you don't have to initialize them over and over again)
from .util import Reusable
# Settings objects for DocQuery
from .util import DocQuerySettingsDict
