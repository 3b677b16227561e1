class BaseDocQueryException(Exception):
    pass


class InvalidQueryError(BaseDocQueryException):
    """ Invalid input provided by the User """

    def __init__(self, err: str):
        self.err = err
        super(InvalidQueryError, self).__init__('Query object error: {err}'.format(err=err))


class ValidationError(InvalidQueryError):
    """ A required parameter is missing, or a parameter is out of range.

        The request is rejected before the document store is accessed.
    """

    def __init__(self, err: str):
        self.err = err
        super(InvalidQueryError, self).__init__(err)


class PageOutOfRangeError(ValidationError):
    """ The requested page does not exist """

    def __init__(self, page: int, total_pages: int):
        self.page = page
        self.total_pages = total_pages

        super(PageOutOfRangeError, self).__init__(
            'Page {page} does not exist. Total pages: {total_pages}'.format(
                page=page,
                total_pages=total_pages)
        )


class DisabledError(InvalidQueryError):
    """ The feature is disabled """


class UpstreamError(BaseDocQueryException):
    """ The document store has failed while loading the primary collection

    This class is used to augment other errors
    """

    def __init__(self, collection: str, cause: Exception):
        self.collection = collection
        self.cause = cause

        super(UpstreamError, self).__init__(
            'Failed to load collection "{collection}": {cause}'.format(
                collection=collection,
                cause=cause)
        )
