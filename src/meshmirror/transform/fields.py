"""
Vector Field Classification
===========================
Decides which result variables are components of a vector field and must
change sign when mirrored.

Why is this file needed?
------------------------
Exodus-style files store a vector field as independent scalar variables
(``velocity_x``, ``velocity_y``, ``velocity_z``). Only the component along the
mirror axis flips sign, so every variable name is classified once, before
any values are copied.

Precedence (highest first):
1. Names in ``scalar_fields`` are scalars.
2. ``<base>_x|_y|_z`` with ``base`` in ``vector_fields`` are vector components.
3. With ``auto_detect`` off everything else is a scalar.
4. Heuristic: ``<base>_x|_y|_z`` unless ``base`` ends with a statistics
   qualifier (``max_x`` is the x position of a maximum, not a component), and
   the whole names ``x, y, z, u, v, w``.
"""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

import numpy as np

from meshmirror.config import SCALAR_QUALIFIERS
from meshmirror.model.axis import Axis

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

_COMPONENT_PATTERN = re.compile(r"^(?P<base>.+)_(?P<axis>[xyz])$", re.IGNORECASE)

# Whole-name components: name -> (base, axis)
_SINGLE_LETTER_COMPONENTS: dict[str, tuple[str, Axis]] = {
    "x": ("xyz", Axis.X),
    "y": ("xyz", Axis.Y),
    "z": ("xyz", Axis.Z),
    "u": ("uvw", Axis.X),
    "v": ("uvw", Axis.Y),
    "w": ("uvw", Axis.Z),
}


@dataclass(frozen=True)
class FieldKind:
    """Classification result: a scalar, or component ``axis`` of vector ``base``."""
    base: Optional[str] = None
    axis: Optional[Axis] = None

    @property
    def is_vector_component(self) -> bool:
        return self.axis is not None

    def flips_under(self, mirror_axis: Axis) -> bool:
        """True if mirroring about ``mirror_axis`` negates this field."""
        return self.axis == mirror_axis

    def __str__(self) -> str:
        if self.axis is None:
            return "scalar"
        return f"vector component {self.axis.upper()} of '{self.base}'"


FieldKind.SCALAR = FieldKind()


def _parse_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class VectorDetectionConfig:
    """
    User overrides for vector field detection.

    Attributes:
        vector_fields: Base names whose ``_x/_y/_z`` variables are always vector components.
        scalar_fields: Full variable names that are always scalars.
        auto_detect: Apply the name heuristic to everything not listed above.
    """
    vector_fields: list[str] = field(default_factory=list)
    scalar_fields: list[str] = field(default_factory=list)
    auto_detect: bool = True

    @classmethod
    def from_cli_options(
        cls,
        vector_fields: Optional[str] = None,
        scalar_fields: Optional[str] = None,
        no_auto_vector_detection: bool = False,
    ) -> VectorDetectionConfig:
        """Build the config from comma-separated CLI lists, e.g. ``"velocity,displacement"``."""
        return cls(
            vector_fields=_parse_list(vector_fields),
            scalar_fields=_parse_list(scalar_fields),
            auto_detect=not no_auto_vector_detection,
        )


class VectorFieldClassifier:
    def __init__(self, config: Optional[VectorDetectionConfig] = None) -> None:
        self.config = config or VectorDetectionConfig()
        self._scalar_names = {name.lower() for name in self.config.scalar_fields}
        self._vector_bases = {name.lower() for name in self.config.vector_fields}
        self._cache: dict[str, FieldKind] = {}

    def classify(self, name: str) -> FieldKind:
        """Classify one variable name; results are cached per name."""
        kind = self._cache.get(name)
        if kind is None:
            kind = self._classify(name)
            self._cache[name] = kind
        return kind

    def _classify(self, name: str) -> FieldKind:
        lowered = name.lower()
        if lowered in self._scalar_names:
            return FieldKind.SCALAR

        match = _COMPONENT_PATTERN.match(name)
        if match and match.group("base").lower() in self._vector_bases:
            return FieldKind(match.group("base"), Axis.parse(match.group("axis")))

        if not self.config.auto_detect:
            return FieldKind.SCALAR

        if lowered in _SINGLE_LETTER_COMPONENTS:
            base, axis = _SINGLE_LETTER_COMPONENTS[lowered]
            return FieldKind(base, axis)

        if match:
            base = match.group("base")
            if base.lower().endswith(SCALAR_QUALIFIERS):
                return FieldKind.SCALAR
            return FieldKind(base, Axis.parse(match.group("axis")))

        return FieldKind.SCALAR

    def classify_all(self, names: Iterable[str], num_dim: int = 3) -> dict[str, FieldKind]:
        """
        Classify every name and report incomplete vector triplets.

        A triplet missing a component is still mirrored component by component;
        the warning only points at a likely naming or override mistake.

        Args:
            names: Variable names.
            num_dim: Spatial dimension; a 2-D vector is complete with X and Y.
        """
        kinds = {name: self.classify(name) for name in names}
        expected_axes = set(list(Axis)[:num_dim])

        components: dict[str, set[Axis]] = defaultdict(set)
        for kind in kinds.values():
            if kind.is_vector_component:
                components[kind.base.lower()].add(kind.axis)

        for base, axes in sorted(components.items()):
            if base in ("xyz", "uvw"):
                continue
            missing = sorted(axis.upper() for axis in expected_axes - axes)
            if missing:
                logger.warning(
                    f"Vector field '{base}' is missing component(s) {', '.join(missing)}; "
                    "present components are mirrored individually."
                )

        for name in self._scalar_names:
            match = _COMPONENT_PATTERN.match(name)
            if match and match.group("base") in components:
                logger.warning(
                    f"'{name}' is forced scalar but other components of '{match.group('base')}' "
                    "are treated as vector components."
                )

        for name, kind in kinds.items():
            logger.debug(f"Variable '{name}': {kind}")
        return kinds


def mirror_values(
    values: npt.NDArray[np.float64],
    kind: FieldKind,
    axis: Axis,
) -> npt.NDArray[np.float64]:
    """Values of the mirrored copy of a field: negated for the mirror-axis component, else copied."""
    if kind.flips_under(axis):
        return -values
    return values.copy()
