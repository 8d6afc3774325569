from .client import Client, CollectionResponse, ResourceResponse  # noqa: F401
from .deferred import Deferred  # noqa: F401
from .document import APIError, Document  # noqa: F401
from .exceptions import (  # noqa: F401
    ClientError,
    InvalidAttributeValue,
    InvalidDocumentStructure,
    InvalidJSONPayload,
    JSONAPIClientException,
    NetworkError,
    NextPageNotAvailable,
    PreviousPageNotAvailable,
    ResourceIDMissing,
    ResourceNotFound,
    ResourceTypeUnregistered,
    SerializerError,
    ServerError,
    UnknownError,
    UnknownField,
)
from .formatters import (  # noqa: F401
    AsIsKeyFormatter,
    BooleanValueFormatter,
    DasherizedKeyFormatter,
    DateValueFormatter,
    KeyFormatter,
    UnderscoredKeyFormatter,
    URLValueFormatter,
    ValueFormatter,
    ValueFormatterRegistry,
)
from .models import (  # noqa: F401
    Attribute,
    BooleanAttribute,
    DateAttribute,
    Field,
    LinkedResourceCollection,
    Relationship,
    Resource,
    ResourceCollection,
    ResourceType,
    ToManyRelationship,
    ToOneRelationship,
    URLAttribute,
)
from .networking import HTTPXNetworkClient, NetworkClient, TransportResponse  # noqa: F401
from .query import (  # noqa: F401
    FilterOperator,
    OffsetBasedPagination,
    PageBasedPagination,
    Query,
)
from .router import JSONAPIRouter, Router  # noqa: F401
from .serializer import SerializationOptions, Serializer  # noqa: F401
