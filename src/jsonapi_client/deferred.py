import typing

T = typing.TypeVar("T")


class Deferred(typing.Generic[T]):
    """
    A deferred object encapsulates a lazily evaluated value.
    It takes a function that yields the value for its constructor argument, and
    it behaves as a callable by which it resolves to the yielded value.

    Resource types refer to each other through their relationships, so a
    relationship is typically declared before the type it points at exists:

    .. code-block:: python

       people = ResourceType("people", fields=[
           ToManyRelationship(Deferred(lambda: articles), "articles"),
       ])
       articles = ResourceType("articles", fields=[
           ToOneRelationship(people, "author"),
       ])

    :param Callable[..., T] yielder: a callable that resolves the value.
    :param args: positional arguments for the yielder.
    :param kwargs: keyword arguments for the yielder.
    """

    _yielder: typing.Callable[..., T]
    _value_yielded: bool = False
    _value: typing.Optional[T] = None
    _args: typing.Sequence[typing.Any]
    _kwargs: typing.Mapping[str, typing.Any]

    @property
    def resolved(self) -> bool:
        return self._value_yielded

    def __call__(self) -> T:
        if not self.resolved:
            self._value = self._yielder(*self._args, **self._kwargs)
            self._value_yielded = True
        return typing.cast(T, self._value)

    def __repr__(self) -> str:
        if self.resolved:
            return f"{type(self).__name__}({self._value!r})"
        return f"{type(self).__name__}(<unresolved>)"

    def __init__(self, yielder: typing.Callable[..., T], *args, **kwargs) -> None:
        self._yielder = yielder
        self._args = args
        self._kwargs = kwargs


def resolve(value: typing.Union[T, Deferred[T]]) -> T:
    """
    Returns ``value`` as is, or what it yields if it is a :py:class:`Deferred`.
    """
    if isinstance(value, Deferred):
        return value()
    return value
