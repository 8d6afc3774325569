import typing


def _escape(component: str) -> str:
    return component.replace("~", "~0").replace("/", "~1")


def _unescape(component: str) -> str:
    return component.replace("~1", "/").replace("~0", "~")


class JSONPointer:
    """
    An immutable `JSON Pointer <https://tools.ietf.org/html/rfc6901>`_ used to tell
    where in a document a node (or an error) comes from.

    .. code-block:: python

       JSONPointer() / "data" / "relationships"     # /data/relationships
       (JSONPointer() / "included")[2]              # /included/2
    """

    _components: typing.Tuple[str, ...]

    @property
    def components(self) -> typing.Tuple[str, ...]:
        return self._components

    @classmethod
    def from_components(cls, components: typing.Iterable[str]) -> "JSONPointer":
        pointer = cls()
        pointer._components = tuple(components)
        return pointer

    def __truediv__(self, component: str) -> "JSONPointer":
        return self.from_components(self._components + (component,))

    def __getitem__(self, index: int) -> "JSONPointer":
        return self.from_components(self._components + (str(index),))

    def __str__(self) -> str:
        return "/" + "/".join(_escape(c) for c in self._components)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"

    def __eq__(self, that: typing.Any) -> bool:
        if isinstance(that, str):
            return str(self) == that
        if not isinstance(that, JSONPointer):
            return NotImplemented
        return self._components == that._components

    def __hash__(self) -> int:
        return hash(self._components)

    def __init__(self, path: str = "/"):
        if not path.startswith("/"):
            raise ValueError(f"invalid JSON pointer: {path!r}")
        self._components = tuple(_unescape(c) for c in path[1:].split("/") if c)
