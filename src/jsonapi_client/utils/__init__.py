import typing

T = typing.TypeVar("T")
K = typing.TypeVar("K", bound=typing.Hashable)


def assert_not_none(value: typing.Optional[T]) -> T:
    assert value is not None
    return value


def unique_by(items: typing.Iterable[T], key: typing.Callable[[T], K]) -> typing.List[T]:
    """
    Returns the items in their original order, dropping every item whose key
    has already been seen.
    """
    seen: typing.Set[K] = set()
    retval: typing.List[T] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        retval.append(item)
    return retval
