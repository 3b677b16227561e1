"""
### Special filters and sorts

Some conditions can't be expressed with field criteria: "is this business open on that date?",
"how far is it from me?". These are implemented as named strategies, requested with a `{type, ...params}` object:

```javascript
{
    specialFilter: { type: 'workingDayOpen', date: '03-15-2025' },
    specialSort: { type: 'distance', lat: 48.85, lon: 2.35, order: 'asc' },
}
```

Every strategy is scoped to the collections it makes sense for.
An unknown type, or a type used on a collection it's not for, is logged and ignored.

#### `workingDayOpen` filter (collection: `users`)

* `date`: a date in `MM-DD-YYYY` format

Keeps documents whose `workingDays` list has an entry for that day of week with `isOpen: true`.
Day names are French: `Dimanche`, `Lundi`, ..., `Samedi`.

#### `distance` sort (collection: `users`)

* `lat`, `lon` (or `latitude`, `longitude`): the point to measure the distance from
* `latField`, `lonField`: paths to the document's coordinates. Default: `address.latitude`, `address.longitude`
* `order`: `asc` (nearest first, the default), or `desc`

Documents without valid coordinates always go last.
The regular `sort` criteria are used as tie-breakers for equal distances.
"""

import math
from datetime import datetime
from logging import getLogger
from typing import List, Mapping, Optional

from ..document import to_number
from ..path import get_path
from ..util.params import decode_if_string

logger = getLogger(__name__)


def parse_special(value, where: str = 'special') -> Optional[dict]:
    """ Parse a special filter or sort: `{type, ...params}`, or its JSON string. Anything else gives None. """
    if not value:
        return None
    value = decode_if_string(value, where)
    if isinstance(value, Mapping) and value.get('type'):
        return dict(value)
    return None


class SpecialStrategyBase:
    """ A named strategy, applicable to some collections """

    #: Name, as used in `type`
    name = None

    #: Collections this strategy applies to. `None` means: any collection
    collections = None

    def __init__(self, params: dict):
        #: The input: {type, ...params}
        self.params = params

    @classmethod
    def applies_to(cls, collection: str) -> bool:
        """ Test whether this strategy can be used with the given collection """
        return cls.collections is None or collection in cls.collections

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.params)


class SpecialFilterBase(SpecialStrategyBase):
    """ A special filter: a custom predicate """

    def filter(self, documents: List[dict]) -> List[dict]:
        raise NotImplementedError()


class SpecialSortBase(SpecialStrategyBase):
    """ A special sort: a custom ordering that takes priority over the regular sort criteria """

    def __init__(self, params: dict, epsilon: float = 1e-4):
        super(SpecialSortBase, self).__init__(params)
        #: Sort keys that differ by no more than this are ties
        self.epsilon = epsilon

    def prepare(self, documents: List[dict]) -> bool:
        """ Compute sort keys for the documents.

        :return: False if the parameters are invalid, and the sort should not be applied
        """
        raise NotImplementedError()

    def compare(self, a: dict, b: dict) -> int:
        """ Compare two prepared documents. 0 means a tie: regular criteria decide. """
        raise NotImplementedError()

    def finalize(self, doc: dict, keep: bool):
        """ Clean up the fields that prepare() has added to the document """


#: Day names, indexed by day of week, Sunday first
FRENCH_DAY_NAMES = ('Dimanche', 'Lundi', 'Mardi', 'Mercredi', 'Jeudi', 'Vendredi', 'Samedi')


def parse_mm_dd_yyyy(value: str) -> Optional[datetime]:
    """ Parse a date in MM-DD-YYYY format. An invalid date gives None. """
    parts = str(value).split('-')
    if len(parts) != 3:
        return None
    try:
        month, day, year = (int(p) for p in parts)
        return datetime(year, month, day)
    except ValueError:
        return None


def french_day_name(date: datetime) -> str:
    """ Day name in French """
    return FRENCH_DAY_NAMES[date.isoweekday() % 7]


class WorkingDayOpenFilter(SpecialFilterBase):
    """ Keep users that are open on the given date """

    name = 'workingDayOpen'
    collections = ('users',)

    def filter(self, documents):
        date_str = self.params.get('date')
        if not date_str:
            logger.error('Special filter "%s" requires a "date" parameter in MM-DD-YYYY format', self.name)
            return documents

        date = parse_mm_dd_yyyy(date_str)
        if date is None:
            # Nothing is open on a day that does not exist
            logger.error('Special filter "%s": invalid date %r. Expected MM-DD-YYYY', self.name, date_str)
            return []

        day_name = french_day_name(date)
        return [doc for doc in documents if self.is_open(doc, day_name)]

    @staticmethod
    def is_open(doc: dict, day_name: str) -> bool:
        working_days = doc.get('workingDays')
        if not isinstance(working_days, list):
            return False

        for working_day in working_days:
            if isinstance(working_day, Mapping) and working_day.get('name') == day_name:
                return working_day.get('isOpen') is True
        return False


#: Radius of the Earth, km
EARTH_RADIUS_KM = 6371


def to_coordinate(value) -> Optional[float]:
    """ Get a finite number from a coordinate value. Anything else, `inf` included, gives None. """
    number = to_number(value)
    if number is None or not math.isfinite(number):
        return None
    return number


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """ Great-circle distance between two points, km """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) ** 2)
    # Rounding can push it out of [0, 1] near antipodes
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class DistanceSort(SpecialSortBase):
    """ Sort by the distance from a point """

    name = 'distance'
    collections = ('users',)

    #: The field the distance is reported in
    DISTANCE_FIELD = 'distance'

    def __init__(self, params: dict, epsilon: float = 1e-4):
        super(DistanceSort, self).__init__(params, epsilon)
        self.order = 'desc' if params.get('order') == 'desc' else 'asc'
        self.lat_field = params.get('latField') or 'address.latitude'
        self.lon_field = params.get('lonField') or 'address.longitude'

        #: Distances, by id() of the document. `None` for invalid coordinates
        self._distances = {}

    def origin(self):
        """ Get the (lat, lon) to measure distances from, or None """
        lat = self.params.get('lat', self.params.get('latitude'))
        lon = self.params.get('lon', self.params.get('longitude'))
        if lat is None or lon is None:
            logger.error('Special sort "%s" requires "lat" and "lon" (or "latitude" and "longitude")', self.name)
            return None

        lat, lon = to_coordinate(lat), to_coordinate(lon)
        if lat is None or lon is None:
            logger.error('Special sort "%s" requires numeric coordinates: %r', self.name, self.params)
            return None
        return lat, lon

    def prepare(self, documents):
        origin = self.origin()
        if origin is None:
            return False

        for doc in documents:
            distance = self.distance_to(doc, *origin)
            self._distances[id(doc)] = distance
            doc[self.DISTANCE_FIELD] = distance
        return True

    def distance_to(self, doc: dict, lat: float, lon: float) -> Optional[float]:
        doc_lat = to_coordinate(get_path(doc, self.lat_field))
        doc_lon = to_coordinate(get_path(doc, self.lon_field))
        if doc_lat is None or doc_lon is None:
            return None
        return haversine_distance(lat, lon, doc_lat, doc_lon)

    def compare(self, a, b):
        da = self._distances.get(id(a))
        db = self._distances.get(id(b))

        # Invalid coordinates go last, regardless of the order
        if da is None and db is None:
            return 0
        if da is None:
            return 1
        if db is None:
            return -1

        diff = db - da if self.order == 'desc' else da - db
        if abs(diff) <= self.epsilon:
            return 0
        return -1 if diff < 0 else 1

    def finalize(self, doc, keep):
        if not keep:
            doc.pop(self.DISTANCE_FIELD, None)


#: Built-in special filters, by name
SPECIAL_FILTERS = {cls.name: cls for cls in (WorkingDayOpenFilter,)}

#: Built-in special sorts, by name
SPECIAL_SORTS = {cls.name: cls for cls in (DistanceSort,)}
