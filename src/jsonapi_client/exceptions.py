import abc
import typing

from .serde.utils import JSONPointer, quoted_enumerate


class JSONAPIClientException(Exception, metaclass=abc.ABCMeta):
    @property
    @abc.abstractmethod
    def message(self) -> str:
        ...  # pragma: nocover

    def __str__(self):
        return self.message


class UnknownField(JSONAPIClientException, KeyError):
    """
    Raised when a field that is not declared on a resource type is accessed.
    """

    resource_type: "models.ResourceType"
    name: str

    @property
    def message(self) -> str:
        return (
            f'resource type "{self.resource_type.name}" declares no field "{self.name}"'
            f" (known fields: {quoted_enumerate(self.resource_type.fields.keys())})"
        )

    def __init__(self, resource_type: "models.ResourceType", name: str):
        super().__init__(resource_type, name)
        self.resource_type = resource_type
        self.name = name


class ClientError(JSONAPIClientException, metaclass=abc.ABCMeta):
    """
    The base class of every error an operation can end up with.
    """


class NetworkError(ClientError):
    """
    The transport failed to deliver a request or to receive its response.
    """

    cause: BaseException

    @property
    def message(self) -> str:
        return f"network error: {self.cause!s}"

    def __init__(self, cause: BaseException):
        super().__init__(cause)
        self.cause = cause


class ServerError(ClientError):
    """
    The server answered with a non-2xx status code.
    """

    status_code: int
    api_errors: typing.Optional[typing.Sequence["document.APIError"]]

    @property
    def message(self) -> str:
        if self.api_errors:
            details = "; ".join(e.title or e.detail or e.code or "" for e in self.api_errors)
            return f"server responded with status {self.status_code}: {details}"
        return f"server responded with status {self.status_code}"

    def __init__(
        self,
        status_code: int,
        api_errors: typing.Optional[typing.Sequence["document.APIError"]] = None,
    ):
        super().__init__(status_code, api_errors)
        self.status_code = status_code
        self.api_errors = api_errors


class SerializerError(ClientError):
    """
    A payload could not be turned into a document, or a resource graph could
    not be turned into a payload.
    """

    _message: str
    source: typing.Optional[JSONPointer]

    @property
    def message(self) -> str:
        if self.source is None:
            return self._message
        return f"{self.source}: {self._message}"

    def __init__(self, message: str, source: typing.Optional[JSONPointer] = None):
        super().__init__(message, source)
        self._message = message
        self.source = source


class InvalidJSONPayload(SerializerError):
    pass


class InvalidDocumentStructure(SerializerError):
    pass


class ResourceIDMissing(SerializerError):
    pass


class ResourceTypeUnregistered(SerializerError):
    type_name: str

    def __init__(self, type_name: str, source: typing.Optional[JSONPointer] = None):
        super().__init__(f'no resource type registered as "{type_name}"', source)
        self.type_name = type_name


class InvalidAttributeValue(SerializerError):
    name: str
    actual: typing.Any

    def __init__(
        self,
        name: str,
        actual: typing.Any,
        detail: typing.Optional[str] = None,
        source: typing.Optional[JSONPointer] = None,
    ):
        super().__init__(
            f'attribute "{name}" contains an invalid value'
            f'{" (" + detail + ")" if detail is not None else ""}: {actual!r}',
            source,
        )
        self.name = name
        self.actual = actual


class ResourceNotFound(ClientError):
    @property
    def message(self) -> str:
        return "the server returned no resource"


class NextPageNotAvailable(ClientError):
    @property
    def message(self) -> str:
        return "the collection has no link to a next page"


class PreviousPageNotAvailable(ClientError):
    @property
    def message(self) -> str:
        return "the collection has no link to a previous page"


class UnknownError(ClientError):
    cause: typing.Optional[BaseException]

    @property
    def message(self) -> str:
        if self.cause is None:
            return "unknown error"
        return f"unknown error: {self.cause!r}"

    def __init__(self, cause: typing.Optional[BaseException] = None):
        super().__init__(cause)
        self.cause = cause


def promote_to_client_error(error: BaseException) -> ClientError:
    """
    Maps any exception onto the :py:class:`ClientError` taxonomy.
    Errors that cannot be classified end up as :py:class:`UnknownError`.
    """
    if isinstance(error, ClientError):
        return error
    return UnknownError(error)


if typing.TYPE_CHECKING:
    from . import document  # noqa: E402
    from . import models  # noqa: E402
