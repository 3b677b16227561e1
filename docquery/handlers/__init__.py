"""

A document store keeps schemaless documents, and can only look them up by id or by a field value.
DocQuery loads a collection and gives you everything else: filters, sorting, search, pagination,
and "population" of related documents.

The Query Object will let you filter, sort, search, paginate, and load related documents.
You would typically send its keys as request parameters, like this:

```
GET /api/search?collection=users&filters={"field":"role","value":"provider"}&sort=rating:desc
```

Composite values may be sent as JSON strings.



Query Object Syntax
-------------------

A Query Object is an object with the following properties:

* `filter`, `special_filter`: [Filter Operation](#filter-operation) filters the results, using your criteria
* `sort`, `special_sort`, `include_distance`: [Sort Operation](#sort-operation) orders the results
* `populate`: [Populate Operation](#populate-operation) loads related documents
* `query`, `fields`, `weights`, `min_score`, `include_score`: [Search Operation](#search-operation)
  ranks the results by relevance
* `page`, `limit`, `cursor`: [Pagination](#pagination) picks a page of results
* `project`: [Project Operation](#project-operation) selects the fields to be returned

An example Query Object is:

```javascript
{
  filter: {
    logic: 'and',
    filters: [
      { field: 'role', value: 'provider' },
      { field: 'address.city', operator: 'in', value: ['Paris', 'Lyon'] },
    ],
  },
  sort: [{ field: 'rating', order: 'desc' }],
  populate: [{ link: 'vendorId', collection: 'services' }],
  query: 'hair salon',
  limit: 20,
  page: 2,
  project: 'name,address.city,services',
}
```

Detailed syntax for every operation is provided in the relevant sections.
"""

from .base import DocQueryHandlerBase

from .filter import DocFilter
from .sort import DocSort
from .populate import DocPopulate, PopulateParams, PopulateOutcome, PopulateStatus
from .search import DocSearch, RelationField
from .limit import DocLimit
from .project import DocProject

from .special import SpecialFilterBase, SpecialSortBase, WorkingDayOpenFilter, DistanceSort
