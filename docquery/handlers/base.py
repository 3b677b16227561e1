from typing import List

from ..source import DocumentSource


class DocQueryHandlerBase:
    """ An implementation of a handler from DocQuery

        Every subclass handles a single section of the Query Object
    """

    #: Name of the Query Object section that this object is capable of handling
    query_object_section_name = None

    def __init__(self, collection: str, source: DocumentSource):
        """ Initialize the Query Object section handler with a collection.

        This method does *not* receive any input data just yet, with the purpose of having an
        object that can be extended with some interesting defaults right at init time.

        :param collection: Name of the collection being queried
        :param source: The document store. Some handlers need to load more documents from it.

        NOTE: Any arguments that have default values will be treated as handler settings!!
        """
        #: The collection to handle the Query Object for
        self.collection = collection
        #: The document store
        self.source = source

        # Has the input() method been called already?
        # This may be important for handlers that depend on other handlers
        self.input_received = False

        #: The input value, as given
        self.input_value = None

        #: DocQuery bound to this object. It may remain uninitialized.
        self.docquery = None

    def with_docquery(self, docquery):
        """ Bind this object with a DocQuery

            :type docquery: docquery.query.DocQuery
        """
        self.docquery = docquery
        return self

    def __copy__(self):
        """ Handlers may be reused: i.e. their state before input() is called.

        Reusable handlers are implemented using the Reusable() wrapper which performs the
        automatic copying on input() call
        """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        return result

    def input_prepare_query_object(self, query_object: dict) -> dict:
        """ Modify the Query Object before it is processed.

        Some handlers receive more than one key of the Query Object: they pack them into one value here.

        This method is called before any input(), or validation, or anything.
        """
        return query_object

    def input(self, qo_value):
        """ Get a section of the Query object.

        The purpose of this method is to receive the input, validate it, and store as a public
        property so that external tools may export its value.

        :param qo_value: the value of the Query object field it's handling
        :rtype: DocQueryHandlerBase
        :raises InvalidQueryError
        """
        self.input_value = qo_value  # no copying. Try not to modify it.

        # Set the flag
        self.input_received = True

        # Make sure that input() can only be used once
        self.input = self.__raise_input_not_reusable

        return self

    def is_input_empty(self) -> bool:
        """ Test whether the input value was empty """
        return not self.input_value

    def __raise_input_not_reusable(self, *args, **kwargs):
        raise RuntimeError("You can't use the {}.input() method twice. "
                           "Wrap the class into Reusable(), or copy() it!"
                           .format(self.__class__.__name__))

    def alter_documents(self, documents: List[dict]) -> List[dict]:
        """ Apply the Query Object section this handler is handling to a list of documents

        :param documents: Documents to process. They may be modified in place.
        :return: The resulting list of documents
        """
        raise NotImplementedError()

    def get_final_input_value(self):
        """ Get the final input of the handler: to be reported back to the user """
        return self.input_value
