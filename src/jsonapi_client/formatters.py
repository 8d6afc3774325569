"""
Formatters translate between the in-memory and the wire representation of
field names (:py:class:`KeyFormatter`) and attribute values (:py:class:`ValueFormatter`).
"""

import abc
import datetime
import re
import typing
import urllib.parse

from .exceptions import InvalidAttributeValue
from .models import Attribute, BooleanAttribute, DateAttribute, Field, URLAttribute

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class KeyFormatter(metaclass=abc.ABCMeta):
    """
    A :py:class:`KeyFormatter` derives the wire key of a field from its name.
    A field declared with a ``serialized_name`` is always sent under that name verbatim.
    """

    @abc.abstractmethod
    def format_name(self, name: str) -> str:
        ...  # pragma: nocover

    def format(self, field: Field) -> str:
        if field.serialized_name is not None:
            return field.serialized_name
        return self.format_name(field.name)


class AsIsKeyFormatter(KeyFormatter):
    def format_name(self, name: str) -> str:
        return name


class DasherizedKeyFormatter(KeyFormatter):
    """
    ``authorName`` and ``author_name`` both become ``author-name``.
    """

    def format_name(self, name: str) -> str:
        return _WORD_BOUNDARY.sub("-", name).replace("_", "-").lower()


class UnderscoredKeyFormatter(KeyFormatter):
    """
    ``authorName`` and ``author-name`` both become ``author_name``.
    """

    def format_name(self, name: str) -> str:
        return _WORD_BOUNDARY.sub("_", name).replace("-", "_").lower()


class ValueFormatter(metaclass=abc.ABCMeta):
    """
    A :py:class:`ValueFormatter` converts the values of a particular kind of attribute.
    ``None`` never reaches a formatter.
    """

    attribute_class: typing.ClassVar[typing.Type[Attribute]] = Attribute

    def can_format(self, attribute: Attribute) -> bool:
        return isinstance(attribute, self.attribute_class)

    @abc.abstractmethod
    def format(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        """
        Converts an in-memory value to its wire representation.
        """
        ...  # pragma: nocover

    @abc.abstractmethod
    def unformat(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        """
        Converts a wire value to its in-memory representation.

        :raises InvalidAttributeValue: if the value cannot be converted.
        """
        ...  # pragma: nocover


class DateValueFormatter(ValueFormatter):
    attribute_class = DateAttribute

    def format(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        format_ = typing.cast(DateAttribute, attribute).format
        if not isinstance(value, datetime.date):
            raise InvalidAttributeValue(attribute.name, value, "not a date")
        if format_ is not None:
            return value.strftime(format_)
        if isinstance(value, datetime.datetime) and value.tzinfo is not None:
            return value.astimezone(datetime.timezone.utc).isoformat()
        return value.isoformat()

    def unformat(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        format_ = typing.cast(DateAttribute, attribute).format
        if not isinstance(value, str):
            raise InvalidAttributeValue(attribute.name, value, "expected a string")
        try:
            if format_ is not None:
                return datetime.datetime.strptime(value, format_)
            # fromisoformat() does not know the "Z" designator on older interpreters
            if value.endswith("Z"):
                value = value[:-1] + "+00:00"
            if "T" not in value and len(value) == 10:
                return datetime.date.fromisoformat(value)
            return datetime.datetime.fromisoformat(value)
        except ValueError as e:
            raise InvalidAttributeValue(attribute.name, value, str(e)) from e


class URLValueFormatter(ValueFormatter):
    attribute_class = URLAttribute

    def format(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        return str(value)

    def unformat(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        if not isinstance(value, str):
            raise InvalidAttributeValue(attribute.name, value, "expected a string")
        base_url = typing.cast(URLAttribute, attribute).base_url
        if base_url is not None:
            return urllib.parse.urljoin(base_url, value)
        return value


class BooleanValueFormatter(ValueFormatter):
    attribute_class = BooleanAttribute

    _truthy: typing.ClassVar[typing.FrozenSet[typing.Any]] = frozenset({"true", "1", "yes", 1})
    _falsy: typing.ClassVar[typing.FrozenSet[typing.Any]] = frozenset({"false", "0", "no", 0})

    def format(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        return bool(value)

    def unformat(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        if isinstance(value, bool):
            return value
        v = value.lower() if isinstance(value, str) else value
        if isinstance(v, (str, int)):
            if v in self._truthy:
                return True
            if v in self._falsy:
                return False
        raise InvalidAttributeValue(attribute.name, value, "expected a boolean")


class ValueFormatterRegistry:
    """
    Holds the value formatters in use.  Formatters registered later take
    precedence over the ones registered earlier.  Values of attributes no
    formatter claims pass through untouched.
    """

    _formatters: typing.List[ValueFormatter]

    def register(self, formatter: ValueFormatter) -> None:
        self._formatters.insert(0, formatter)

    def _find(self, attribute: Attribute) -> typing.Optional[ValueFormatter]:
        for formatter in self._formatters:
            if formatter.can_format(attribute):
                return formatter
        return None

    def format(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        if value is None:
            return None
        formatter = self._find(attribute)
        return value if formatter is None else formatter.format(value, attribute)

    def unformat(self, value: typing.Any, attribute: Attribute) -> typing.Any:
        if value is None:
            return None
        formatter = self._find(attribute)
        return value if formatter is None else formatter.unformat(value, attribute)

    @classmethod
    def default_registry(cls) -> "ValueFormatterRegistry":
        return cls(
            [
                DateValueFormatter(),
                URLValueFormatter(),
                BooleanValueFormatter(),
            ]
        )

    def __init__(self, formatters: typing.Iterable[ValueFormatter] = ()):
        self._formatters = []
        for formatter in formatters:
            self.register(formatter)
