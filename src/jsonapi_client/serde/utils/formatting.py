import typing


def english_enumerate(items: typing.Iterable[str], conj: str = "and") -> str:
    """
    Joins ``items`` the way they would be enumerated in an English sentence.

    >>> english_enumerate(["a", "b", "c"])
    'a, b, and c'
    >>> english_enumerate(["a", "b"], "or")
    'a or b'
    """
    items = list(items)
    if len(items) <= 1:
        return "".join(items)
    elif len(items) == 2:
        return f"{items[0]} {conj} {items[1]}"
    return ", ".join(items[:-1]) + f", {conj} " + items[-1]


def quoted_enumerate(items: typing.Iterable[str], conj: str = "and") -> str:
    return english_enumerate((f'"{item}"' for item in items), conj)
