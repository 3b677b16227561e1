"""
### Populate Operation

Documents refer to each other by id, but the document store can't join them.
Population loads the related documents and puts them right into the documents being returned.

#### Forward population

The document has a field with the id (or a list of ids) of another document:

```javascript
// services: { id: 's1', title: 'Haircut', vendorId: 'u1' }
populate: [
    { field: 'vendorId', collection: 'users', as: 'vendor', select: 'name,address.city' }
]
// -> { id: 's1', title: 'Haircut', vendorId: 'u1', vendor: { id: 'u1', name: ..., address: { city: ... } } }
```

* `field`: the field with the id(s). Dot-notation is supported.
* `collection`: the collection to load documents from
* `as`: the field to write the result to. Default: `field` itself (the id is replaced with the document)
* `select`: fields to pick from related documents. Default: `*`

A single id gives a document, or `null` when it's not found. A list of ids gives a list of documents:
the ones that are not found are omitted.

#### Reverse population

Other documents refer to this one:

```javascript
// users: { id: 'u1', name: 'Alice' }
populate: [
    { link: 'vendorId', collection: 'services', as: 'services' }
]
// -> { id: 'u1', name: 'Alice', services: [ { id: 's1', vendorId: 'u1', ... }, ... ] }
```

* `link`: the field in the related collection that refers to this document.
  It can be a single id, or a list of ids.
* `as`: Default: the collection name

The result is always a list.

#### Direction

`type: 'forward' | 'reverse'` tells it explicitly.
Otherwise, `field` means forward, and `link` means reverse.
A step with neither, or with both and no `type`, is skipped.

#### Nesting

Every step can have its own `populate`, which is applied to the documents it has loaded:

```javascript
populate: [
    { field: 'serviceId', collection: 'services', as: 'service', populate: [
        { field: 'vendorId', collection: 'users', as: 'vendor' },
    ]},
]
```

#### Failures

Population never fails the query: a failed lookup leaves the documents without (some of) their related data.
Every step reports its outcome: `ok`, `partial` (some lookups failed), or `skipped` (invalid step).
"""

from concurrent import futures
from enum import Enum
from functools import partial
from logging import getLogger
from typing import Callable, Iterable, List, Mapping, Optional

from .base import DocQueryHandlerBase
from .project import select_fields
from ..document import is_timestamp
from ..exc import InvalidQueryError
from ..path import get_path, set_path, flatten_value
from ..util.params import decode_if_string

logger = getLogger(__name__)


class PopulateParams:
    """ A population step """

    __slots__ = ('collection', 'field', 'link', 'select', 'as_', 'type', 'populate')

    def __init__(self, collection: str, field: str = None, link: str = None, select='*',
                 as_: str = None, type: str = None, populate: List['PopulateParams'] = None):
        self.collection = collection
        self.field = field
        self.link = link
        self.select = select or '*'
        self.as_ = as_
        self.type = type
        self.populate = populate or []

    @property
    def direction(self) -> Optional[str]:
        """ 'forward', 'reverse', or None when it can't be told """
        if self.type in ('forward', 'reverse'):
            return self.type
        if self.field and not self.link:
            return 'forward'
        if self.link and not self.field:
            return 'reverse'
        return None

    @property
    def is_forward(self) -> bool:
        return self.direction == 'forward' and bool(self.field)

    @property
    def is_reverse(self) -> bool:
        return self.direction == 'reverse' and bool(self.link)

    @property
    def is_valid(self) -> bool:
        return self.is_forward or self.is_reverse

    @property
    def target(self) -> Optional[str]:
        """ The field to write the result to """
        if self.as_:
            return self.as_
        if self.field and self.direction != 'reverse':
            return self.field
        if self.link:
            return self.collection
        return None

    @classmethod
    def from_dict(cls, d: Mapping, where: str = 'populate') -> 'PopulateParams':
        if not isinstance(d, Mapping):
            raise InvalidQueryError('{}: every item must be an object; {!r} provided'.format(where, d))
        if not d.get('collection') or not isinstance(d['collection'], str):
            raise InvalidQueryError('{}: `collection` is required'.format(where))

        return cls(
            collection=d['collection'],
            field=d.get('field'),
            link=d.get('link'),
            select=d.get('select'),
            as_=d.get('as'),
            type=d.get('type'),
            populate=parse_populate(d.get('populate'), where),
        )

    def to_dict(self) -> dict:
        d = dict(collection=self.collection, select=self.select, **{'as': self.target})
        for name in ('field', 'link', 'type'):
            if getattr(self, name):
                d[name] = getattr(self, name)
        if self.populate:
            d['populate'] = [p.to_dict() for p in self.populate]
        return d

    def __repr__(self):
        return 'PopulateParams({!r})'.format(self.to_dict())


def parse_populate(value, where: str = 'populate') -> List[PopulateParams]:
    """ Parse population steps: a list of objects, a single object, or its JSON string """
    value = decode_if_string(value, where)
    if not value:
        return []

    if isinstance(value, Mapping):
        value = [value]

    if not isinstance(value, (list, tuple)):
        raise InvalidQueryError('{} must be either a list, or an object; {} provided'
                                .format(where, type(value).__name__))

    return [PopulateParams.from_dict(item, where) for item in value]


class PopulateStatus(str, Enum):
    """ How a population step went """
    OK = 'ok'
    PARTIAL = 'partial'
    SKIPPED = 'skipped'


class PopulateOutcome:
    """ The result of a population step """

    __slots__ = ('params', 'path', 'status', 'errors')

    def __init__(self, params: PopulateParams, path: str, status: PopulateStatus = PopulateStatus.OK):
        self.params = params
        #: Where the result was written to: dot-notation through nested steps
        self.path = path
        self.status = status
        #: Error messages of failed lookups
        self.errors = []

    def add_error(self, error: Exception):
        self.errors.append(str(error))
        self.status = PopulateStatus.PARTIAL

    def to_dict(self) -> dict:
        return dict(path=self.path,
                    collection=self.params.collection,
                    status=self.status.value,
                    errors=self.errors)

    def __repr__(self):
        return 'PopulateOutcome({}: {})'.format(self.path, self.status.value)


class DocPopulate(DocQueryHandlerBase):
    """ Populate: load related documents """

    query_object_section_name = 'populate'

    def __init__(self, collection, source, batch_size=10, max_workers=4, allowed_collections=None):
        """ Init population

        :param batch_size: The number of ids per lookup
        :param max_workers: The number of lookups that run concurrently
        :param allowed_collections: Collections that can be populated from; None for any
        """
        super(DocPopulate, self).__init__(collection, source)

        # Config
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.allowed_collections = frozenset(allowed_collections) if allowed_collections is not None else None
        assert self.batch_size > 0
        assert self.max_workers > 0

        # On input
        self.steps = []  # type: List[PopulateParams]

        # After population
        self.outcomes = []  # type: List[PopulateOutcome]

    def __copy__(self):
        obj = super(DocPopulate, self).__copy__()
        obj.outcomes = obj.outcomes.copy()
        return obj

    def input(self, populate):
        super(DocPopulate, self).input(populate)
        self.steps = parse_populate(populate)

        # Validate collections
        if self.allowed_collections is not None:
            self._validate_collections(self.steps)
        return self

    def _validate_collections(self, steps: Iterable[PopulateParams]):
        for step in steps:
            if step.collection not in self.allowed_collections:
                raise InvalidQueryError('Population from collection "{}" is not allowed'.format(step.collection))
            self._validate_collections(step.populate)

    def is_input_empty(self):
        return not self.steps

    @property
    def has_reverse(self) -> bool:
        """ Is there a reverse population step? """
        return any(step.is_reverse for step in self.steps)

    @property
    def target_fields(self) -> List[str]:
        """ Fields that population writes to """
        return [step.target for step in self.steps if step.is_valid]

    @property
    def source_fields(self) -> List[str]:
        """ Fields that forward population reads foreign keys from """
        return [step.field for step in self.steps if step.is_forward]

    def refers_to_populated(self, fields: Iterable[str]) -> bool:
        """ Test whether any of the `fields` is a populated field, or is inside one """
        targets = self.target_fields
        return any(field == target or field.startswith(target + '.')
                   for field in fields
                   for target in targets)

    def alter_documents(self, documents):
        """ Populate the documents in place """
        self.populate(documents, self.steps)
        return documents

    def populate(self, documents: List[dict], steps: List[PopulateParams], parent_path: str = ''):
        """ Apply population steps to the documents """
        for step in steps:
            path = '.'.join(filter(None, (parent_path, step.target or step.collection)))
            outcome = PopulateOutcome(step, path)
            self.outcomes.append(outcome)

            if not step.is_valid:
                logger.warning('Population step skipped: must have either "field" (forward) or "link" (reverse): %r',
                               step)
                outcome.status = PopulateStatus.SKIPPED
                continue

            if step.is_reverse:
                self._populate_reverse(documents, step, outcome)
            else:
                self._populate_forward(documents, step, outcome)

            # Nested population
            if step.populate:
                nested = self._collect_populated(documents, step.target)
                if nested:
                    self.populate(nested, step.populate, path)
        return documents

    def _populate_forward(self, documents: List[dict], step: PopulateParams, outcome: PopulateOutcome):
        # Distinct foreign keys, in order
        foreign_keys = list(dict.fromkeys(
            fk
            for doc in documents
            for fk in _foreign_keys(get_path(doc, step.field))
        ))

        # Load them
        loaded = {}
        tasks = [partial(self.source.get_many, step.collection, batch)
                 for batch in self._batches(foreign_keys)]
        for related_docs in self._run_concurrently(tasks, step, outcome):
            for related in related_docs:
                loaded[related['id']] = select_fields(related, step.select)

        # Put them into documents
        for doc in documents:
            _put_related(doc, step.field, step.target, loaded)

    def _populate_reverse(self, documents: List[dict], step: PopulateParams, outcome: PopulateOutcome):
        parent_ids = list(dict.fromkeys(doc['id'] for doc in documents if doc.get('id')))

        related_by_parent = {id: [] for id in parent_ids}
        seen = {id: set() for id in parent_ids}

        def attach(parent_id, related):
            if related.get('id') not in seen[parent_id]:
                seen[parent_id].add(related.get('id'))
                related_by_parent[parent_id].append(select_fields(related, step.select))

        if parent_ids:
            # Documents that link with a single id are found with `in` lookups.
            # Documents that link with a list of ids are only found by a scan.
            tasks = [partial(self.source.query_in, step.collection, step.link, batch)
                     for batch in self._batches(parent_ids)]
            tasks.append(partial(self.source.scan, step.collection))

            for related_docs in self._run_concurrently(tasks, step, outcome):
                for related in related_docs:
                    link = get_path(related, step.link)
                    if isinstance(link, list):
                        for parent_id in parent_ids:
                            if parent_id in link:
                                attach(parent_id, related)
                    elif isinstance(link, str) and link in related_by_parent:
                        attach(link, related)

        for doc in documents:
            set_path(doc, step.target, related_by_parent.get(doc.get('id'), []))

    def _batches(self, ids: List[str]) -> List[List[str]]:
        return [ids[i:i + self.batch_size]
                for i in range(0, len(ids), self.batch_size)]

    def _run_concurrently(self, tasks: List[Callable], step: PopulateParams, outcome: PopulateOutcome) -> list:
        """ Run lookups concurrently, wait for all of them.

        Failed lookups are logged and reported in the outcome; their results are left out.
        """
        if not tasks:
            return []

        with futures.ThreadPoolExecutor(max_workers=min(self.max_workers, len(tasks))) as ex:
            submitted = [ex.submit(task) for task in tasks]

        results = []
        for future in submitted:
            try:
                results.append(future.result())
            except Exception as e:
                logger.error('Population from collection "%s" failed: %s', step.collection, e, exc_info=True)
                outcome.add_error(e)
        return results

    @staticmethod
    def _collect_populated(documents: List[dict], target: str) -> List[dict]:
        """ Collect the documents that population has put into `target`. Each one only once. """
        collected = {}
        for doc in documents:
            for value in flatten_value(get_path(doc, target)):
                if isinstance(value, Mapping) and not is_timestamp(value):
                    collected.setdefault(id(value), value)
        return list(collected.values())

    def get_final_input_value(self):
        return [step.to_dict() for step in self.steps]


def _foreign_keys(value) -> List[str]:
    """ Get the list of string ids from a foreign key field """
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v]
    if isinstance(value, str) and value:
        return [value]
    return []


def _put_related(doc: dict, field: str, target: str, loaded: dict):
    """ Put the loaded documents into `target`, next to the foreign key in `field`

    When `field` and `target` go through the same array, e.g. 'items.serviceId' -> 'items.service',
    every element gets the document its own foreign key points to.
    """
    field_head, _, field_rest = field.partition('.')
    target_head, _, target_rest = target.partition('.')
    nested = doc.get(field_head)
    if field_rest and target_rest and field_head == target_head and isinstance(nested, list):
        for item in nested:
            if isinstance(item, Mapping):
                _put_related(item, field_rest, target_rest, loaded)
        return

    fk = get_path(doc, field)
    if isinstance(fk, list):
        value = [loaded[k] for k in fk if isinstance(k, str) and k in loaded]
    elif isinstance(fk, str) and fk:
        value = loaded.get(fk)
    else:
        value = None
    set_path(doc, target, value)
