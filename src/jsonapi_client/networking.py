import abc
import logging
import typing

import httpx

from .exceptions import NetworkError
from .serde.types import Payload

logger = logging.getLogger(__name__)

JSONAPI_MEDIA_TYPE = "application/vnd.api+json"


class TransportResponse(typing.NamedTuple):
    status_code: int
    body: typing.Optional[Payload]


class NetworkClient(metaclass=abc.ABCMeta):
    """
    A :py:class:`NetworkClient` performs HTTP requests on behalf of the operations.
    Any exception it raises is considered a transport failure.
    """

    @abc.abstractmethod
    async def request(
        self, method: str, url: str, payload: typing.Optional[Payload] = None
    ) -> TransportResponse:
        ...  # pragma: nocover

    async def aclose(self) -> None:
        pass


class HTTPXNetworkClient(NetworkClient):
    """
    The default :py:class:`NetworkClient`, built on :py:class:`httpx.AsyncClient`.

    :param Optional[httpx.AsyncClient] client: a client to borrow.  It is left open
                                               by :py:meth:`aclose`.  A client is created
                                               and owned if omitted.
    :param Optional[Mapping[str, str]] headers: headers sent along with every request,
                                                such as ``Authorization``.
    :param float timeout: the timeout of the owned client, in seconds.
    """

    default_timeout: typing.ClassVar[float] = 30.0

    _client: httpx.AsyncClient
    _owns_client: bool
    headers: typing.Dict[str, str]

    async def request(
        self, method: str, url: str, payload: typing.Optional[Payload] = None
    ) -> TransportResponse:
        headers = {"Accept": JSONAPI_MEDIA_TYPE}
        if payload is not None:
            headers["Content-Type"] = JSONAPI_MEDIA_TYPE
        headers.update(self.headers)
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, content=payload, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(e) from e
        logger.debug("%s %s: %d", method, url, response.status_code)
        return TransportResponse(response.status_code, response.content)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def __init__(
        self,
        client: typing.Optional[httpx.AsyncClient] = None,
        headers: typing.Optional[typing.Mapping[str, str]] = None,
        timeout: typing.Optional[float] = None,
    ):
        if client is None:
            self._client = httpx.AsyncClient(
                timeout=timeout if timeout is not None else self.default_timeout
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False
        self.headers = dict(headers) if headers is not None else {}
