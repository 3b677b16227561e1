"""
### Project Operation

Projection selects the fields to be returned:

```javascript
$.get('/api/search?select=name,address.city,rating')
```

* A comma-separated string, or a list of field paths
* `*`, or nothing: all fields

Nested fields keep their structure: `address.city` gives `{ address: { city: ... } }`.
`id` is always included, and so are the fields that population writes to.

The same syntax is used by `select` in population: see docquery.handlers.populate
"""

from typing import Iterable, List, Optional, Union

from .base import DocQueryHandlerBase
from ..exc import InvalidQueryError
from ..path import get_path, set_path, MISSING


def parse_select(select) -> Optional[List[str]]:
    """ Parse a projection: a list of fields, or None for 'all fields' """
    if not select:
        return None

    if isinstance(select, str):
        select = select.split(',')

    if not isinstance(select, (list, tuple)):
        raise InvalidQueryError('select must be either a string, or a list; {} provided'
                                .format(type(select).__name__))

    fields = [str(f).strip() for f in select if f and str(f).strip()]
    if not fields or '*' in fields:
        return None
    return fields


def select_fields(doc: Optional[dict], select: Union[str, Iterable[str], None]) -> Optional[dict]:
    """ Pick fields from a document. `id` is always picked. """
    if doc is None:
        return None

    fields = parse_select(select)
    if fields is None:
        return doc

    result = {'id': doc['id']} if 'id' in doc else {}
    for field in fields:
        value = get_path(doc, field)
        if value is not MISSING:
            set_path(result, field, value)
    return result


class DocProject(DocQueryHandlerBase):
    """ Projection: select the fields to return """

    query_object_section_name = 'project'

    def __init__(self, collection, source, force_exclude=None):
        """ Init a projection

        :param force_exclude: Top-level fields that are never returned
        """
        super(DocProject, self).__init__(collection, source)

        # Config
        self.force_exclude = frozenset(force_exclude or ())

        # On input
        #: Selected fields; None for all
        self.fields = None
        #: Fields that are always kept: e.g. populated ones
        self.kept_fields = []

    def __copy__(self):
        obj = super(DocProject, self).__copy__()
        obj.kept_fields = obj.kept_fields.copy()
        return obj

    def input(self, select):
        super(DocProject, self).input(select)
        self.fields = parse_select(select)
        return self

    def is_input_empty(self):
        return self.fields is None

    def keep(self, *fields: str):
        """ Make sure that these fields are included in every projection """
        self.kept_fields.extend(f for f in fields if f and f not in self.kept_fields)
        return self

    def project(self, doc: dict) -> dict:
        """ Project a single document """
        if self.fields is not None:
            doc = select_fields(doc, self.fields + self.kept_fields)

        if self.force_exclude:
            doc = {k: v for k, v in doc.items() if k not in self.force_exclude}
        return doc

    def alter_documents(self, documents):
        if self.fields is None and not self.force_exclude:
            return documents
        return [self.project(doc) for doc in documents]

    def get_final_input_value(self):
        return self.fields or '*'
