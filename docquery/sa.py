""" A document store on top of an SQL database

All collections share one table: documents are kept as JSON, keyed by (collection, id).

    engine = create_engine('postgresql://...')
    source = SqlDocumentSource(engine)
    source.create_table()

    DocQuery(source, 'users').query(filter=...).end()
"""

from typing import Iterable, List, Mapping, Optional, Union

from sqlalchemy import Column, JSON, MetaData, String, Table
from sqlalchemy import select, and_
from sqlalchemy.engine import Engine

from .source import DocumentSource


metadata = MetaData()


def documents_table(name: str = 'documents', metadata: MetaData = metadata) -> Table:
    """ Define a table for documents """
    return Table(
        name, metadata,
        Column('collection', String(255), primary_key=True),
        Column('id', String(255), primary_key=True),
        Column('data', JSON, nullable=False),
    )


#: The default table
documents = documents_table()


class SqlDocumentSource(DocumentSource):
    """ Documents stored in an SQL table, as JSON """

    def __init__(self, engine: Engine, table: Table = None):
        """ Init the store

        :param engine: SqlAlchemy engine
        :param table: The table to use. See: documents_table()
        """
        self.engine = engine
        self.table = documents if table is None else table

    def create_table(self):
        """ Create the table, unless it exists """
        self.table.create(self.engine, checkfirst=True)
        return self

    def insert(self, collection: str, doc: dict, id: str = None):
        """ Add a document to a collection """
        return self.insert_many(collection, {id: doc} if id else [doc])

    def insert_many(self, collection: str, docs: Union[Iterable[dict], Mapping[str, dict]]):
        """ Add many documents: a list of documents with ids, or a mapping { id: document } """
        if isinstance(docs, Mapping):
            docs = [{**doc, 'id': id} for id, doc in docs.items()]

        rows = []
        for doc in docs:
            data = dict(doc)
            id = data.pop('id')
            rows.append(dict(collection=collection, id=str(id), data=data))

        if rows:
            with self.engine.begin() as conn:
                conn.execute(self.table.insert(), rows)
        return self

    def scan(self, collection):
        return self._select(self.table.c.collection == collection)

    def get(self, collection, id):
        docs = self._select(and_(self.table.c.collection == collection,
                                 self.table.c.id == str(id)))
        return docs[0] if docs else None

    def get_many(self, collection, ids):
        if not ids:
            return []
        return self._select(and_(self.table.c.collection == collection,
                                 self.table.c.id.in_([str(id) for id in ids])))

    def query_equal(self, collection, field, value):
        return self.query_in(collection, field, [value])

    def query_in(self, collection, field, values):
        values = list(values)

        # JSON path extraction can only compare strings reliably across databases.
        # Other values, and indexed paths, are filtered in Python
        if not values or '[' in field or not all(isinstance(v, str) for v in values):
            return super(SqlDocumentSource, self).query_in(collection, field, values)

        json_value = self.table.c.data[tuple(field.split('.'))].as_string()
        return self._select(and_(self.table.c.collection == collection,
                                 json_value.in_(values)))

    def _select(self, condition) -> List[dict]:
        """ Load documents matching a condition """
        stmt = select(self.table.c.id, self.table.c.data).where(condition)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [self._make_doc(row.id, row.data) for row in rows]

    @staticmethod
    def _make_doc(id: str, data: Optional[dict]) -> dict:
        # JSON is decoded anew for every row: documents are never shared
        return {'id': id, **(data or {})}

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.engine.url)
