"""
Property Model

Named, typed, permissioned values mirroring the state of a device.
Values are stored as native Python types and rendered back to the
wire string representation at the boundary.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from pegasus_astro.common.exceptions import (
    InvalidValueError,
    ReadOnlyPropertyError,
    UnknownPropertyError,
)

PropertyValue = int | float | bool | str

_TRUE_STRINGS = {"1", "true"}
_FALSE_STRINGS = {"0", "false"}


class PropertyKind(str, Enum):
    """Declared value type of a property"""
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"

    def parse(self, raw: str) -> PropertyValue:
        """Parse a wire string into the native type, InvalidValueError if malformed"""
        text = raw.strip()
        try:
            if self is PropertyKind.INTEGER:
                return int(text)
            if self is PropertyKind.FLOAT:
                return float(text)
            if self is PropertyKind.BOOLEAN:
                lowered = text.lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
                raise ValueError(f"not a boolean: {raw!r}")
        except ValueError as e:
            raise InvalidValueError(
                f"'{raw}' is not a valid {self.value}", value=raw
            ) from e
        return raw

    def render(self, value: PropertyValue) -> str:
        """Render a native value as its wire string"""
        if self is PropertyKind.BOOLEAN:
            return "1" if value else "0"
        return str(value)


class Permission(str, Enum):
    READ_ONLY = "ReadOnly"
    WRITE_ONLY = "WriteOnly"
    READ_WRITE = "ReadWrite"


@dataclass
class Property:
    """One state field of a device"""
    name: str
    value: PropertyValue
    kind: PropertyKind
    permission: Permission

    @classmethod
    def from_wire(
        cls,
        name: str,
        raw: str,
        kind: PropertyKind,
        permission: Permission = Permission.READ_ONLY,
    ) -> "Property":
        return cls(name=name, value=kind.parse(raw), kind=kind, permission=permission)

    @property
    def wire_value(self) -> str:
        return self.kind.render(self.value)

    @property
    def writable(self) -> bool:
        return self.permission != Permission.READ_ONLY

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.wire_value,
            "kind": self.kind.value,
            "permission": self.permission.value,
        }


@dataclass(frozen=True)
class PropertySpec:
    """Schema entry: fixed name, kind and permission of one table position"""
    name: str
    kind: PropertyKind
    permission: Permission = Permission.READ_ONLY

    def build(self, raw: str) -> Property:
        return Property.from_wire(self.name, raw, self.kind, self.permission)


# Remote write callback: (prop_name, wire_value) -> None, raises DeviceError on failure
RemoteWrite = Callable[[str, str], Awaitable[None]]

# Writing one of these to adjustable_output toggles adj_output_status instead of the level
ADJUSTABLE_OUTPUT = "adjustable_output"
STATUS_TOGGLE_VALUES = ("0", "1")


class PropertyTable:
    """
    Ordered collection of properties with a fixed schema.

    Order is set by the first population and never changes; later
    merges match entries positionally and only touch values.
    """

    def __init__(self):
        self._items: list[Property] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __getitem__(self, index: int) -> Property:
        return self._items[index]

    def replace_or_merge(self, new_properties: list[Property], offset: int = 0) -> None:
        """
        Store the properties on first population, otherwise update values
        of the entries starting at `offset` by position.
        """
        if not self._items and offset == 0:
            names = [p.name for p in new_properties]
            if len(names) != len(set(names)):
                raise ValueError("duplicate property names in schema")
            self._items = list(new_properties)
            return

        if offset + len(new_properties) > len(self._items):
            raise ValueError(
                f"merge of {len(new_properties)} properties at {offset} "
                f"exceeds table size {len(self._items)}"
            )

        for idx, prop in enumerate(new_properties, start=offset):
            current = self._items[idx]
            if current.name != prop.name:
                raise ValueError(
                    f"schema mismatch at position {idx}: {current.name} != {prop.name}"
                )
            if current.value != prop.value:
                current.value = prop.value

    def find(self, name: str) -> int | None:
        """Index of the first property with exactly this name"""
        for idx, prop in enumerate(self._items):
            if prop.name == name:
                return idx
        return None

    def get(self, name: str) -> Property | None:
        idx = self.find(name)
        return self._items[idx] if idx is not None else None

    async def set(self, name: str, raw_value: str, remote_write: RemoteWrite) -> None:
        """
        Write a property remotely, then locally on success.

        Raises:
            UnknownPropertyError: name not in the table
            ReadOnlyPropertyError: property is ReadOnly (no remote call made)
            InvalidValueError: value does not parse as the property's kind
            DeviceError: whatever the remote write raised
        """
        idx = self.find(name)
        if idx is None:
            raise UnknownPropertyError(name)

        prop = self._items[idx]
        if not prop.writable:
            raise ReadOnlyPropertyError(name)

        value = prop.kind.parse(raw_value)
        wire_value = prop.kind.render(value)

        await remote_write(name, wire_value)

        if name == ADJUSTABLE_OUTPUT and wire_value in STATUS_TOGGLE_VALUES:
            # Status is picked up by the next refresh
            return
        prop.value = value

    def to_list(self) -> list[dict]:
        return [prop.to_dict() for prop in self._items]
