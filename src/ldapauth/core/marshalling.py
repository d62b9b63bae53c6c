"""Conversion of raw directory attributes into an AttributeResult.

Each attribute is held as a tagged value: ``Scalar`` when the directory
returned exactly one value, ``Sequence`` otherwise. The plain mapping view
flattens these to ``str`` and ``list`` respectively, so callers of the
mapping must handle both shapes. ``AttributeResult.as_list`` gives a
uniform list view.
"""

import base64
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Tuple, Union

GROUPS_ATTRIBUTE = "allGroups"


class Scalar(NamedTuple):
    value: str

    def to_python(self) -> str:
        return self.value

    def as_list(self) -> List[str]:
        return [self.value]


class Sequence(NamedTuple):
    values: Tuple[str, ...]

    def to_python(self) -> List[str]:
        return list(self.values)

    def as_list(self) -> List[str]:
        return list(self.values)


AttributeValue = Union[Scalar, Sequence]


def decode_value(raw: Union[bytes, str]) -> str:
    """Decode a raw attribute value; binary values come back as base64 text."""
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError:
        return base64.b64encode(raw).decode('ascii')


def to_attribute_value(values: Iterable[str]) -> AttributeValue:
    """Tag a list of values by its cardinality."""
    values = tuple(values)
    if len(values) == 1:
        return Scalar(values[0])
    return Sequence(values)


class AttributeResult(Mapping):
    """Ordered mapping of attribute name to a string or a list of strings."""

    def __init__(self):
        self._values: Dict[str, AttributeValue] = {}

    def set(self, name: str, values: Iterable[str]) -> None:
        self._values[name] = to_attribute_value(values)

    def set_groups(self, groups: Iterable[str]) -> None:
        """Store the resolved group names; always a list, whatever its length."""
        self._values.pop(GROUPS_ATTRIBUTE, None)
        self._values[GROUPS_ATTRIBUTE] = Sequence(tuple(groups))

    def get_variant(self, name: str) -> AttributeValue:
        return self._values[name]

    def variants(self) -> Iterator[Tuple[str, AttributeValue]]:
        return iter(self._values.items())

    def as_list(self, name: str) -> List[str]:
        """Values of ``name`` as a list, or an empty list if absent."""
        value = self._values.get(name)
        return value.as_list() if value is not None else []

    @property
    def groups(self) -> List[str]:
        return self.as_list(GROUPS_ATTRIBUTE)

    def to_dict(self) -> Dict[str, Any]:
        return {name: value.to_python() for name, value in self._values.items()}

    def __getitem__(self, name: str) -> Union[str, List[str]]:
        return self._values[name].to_python()

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"AttributeResult({self.to_dict()!r})"


def marshal_entry(entry) -> AttributeResult:
    """
    Build an AttributeResult from a directory entry.
    
    Args:
        entry: DirectoryEntry (or None when the search matched nothing)
        
    Returns:
        Attributes in the order the directory returned them
    """
    result = AttributeResult()
    if entry is None:
        return result
    for name, raw_values in entry.attributes.items():
        result.set(name, [decode_value(value) for value in raw_values])
    return result
