from __future__ import annotations

from enum import StrEnum

from meshmirror.errors import InvalidAxis


class Axis(StrEnum):
    """Coordinate axis normal to the mirror plane."""
    X = "x"
    Y = "y"
    Z = "z"

    @property
    def index(self) -> int:
        """Column of this axis in a coordinate array."""
        return "xyz".index(self.value)

    @classmethod
    def parse(cls, value: Axis | str) -> Axis:
        """
        Resolve an axis from an ``Axis`` or a case-insensitive name.

        Raises:
            InvalidAxis: If the value is not one of x, y, z.
        """
        if isinstance(value, Axis):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidAxis(value)
