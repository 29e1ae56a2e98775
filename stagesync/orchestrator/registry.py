"""Unit registry.

Holds the static set of units, validates their dependency graph once at
construction and exposes the derived sync and cleanup orders. Instances are
immutable; build a new registry to change the unit set.

Registry files are YAML documents of the form::

    units:
      - name: nfd
        kind: operator
      - name: instance-nfd
        kind: instance
        dependencies: [nfd]
        readiness:
          type: crd
          name: nodefeaturediscoveries.nfd.openshift.io
    cleanup_extras:
      - name: cluster-config
        kind: config
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import CLEANUP_EXTRAS, CONFIG_UNITS, SYNC_UNITS
from .errors import ConfigurationError, CyclicDependency, UnknownUnit
from .models import (
    AllOfSignal,
    ControllerSignal,
    CrdSignal,
    ReadinessSignal,
    ResourcePhaseSignal,
    Unit,
    UnitKind,
)

# =============================================================================
# Registry File Schema
# =============================================================================


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class CrdSignalSpec(_Spec):
    type: Literal["crd"]
    name: str = Field(min_length=1, description="CRD name, e.g. widgets.example.io")

    def to_signal(self) -> ReadinessSignal:
        return CrdSignal(self.name)


class ControllerSignalSpec(_Spec):
    type: Literal["controller"]
    name_prefix: str = Field(min_length=1)
    namespace: str = Field(min_length=1)

    def to_signal(self) -> ReadinessSignal:
        return ControllerSignal(self.name_prefix, self.namespace)


class PhaseSignalSpec(_Spec):
    type: Literal["phase"]
    kind: str = Field(min_length=1)
    name: str = Field(min_length=1)
    expected_phase: str = Field(min_length=1)
    namespace: str | None = None

    def to_signal(self) -> ReadinessSignal:
        return ResourcePhaseSignal(
            self.kind, self.name, self.expected_phase, self.namespace
        )


class AllOfSignalSpec(_Spec):
    type: Literal["all_of"]
    signals: list[SignalSpec] = Field(min_length=1)

    def to_signal(self) -> ReadinessSignal:
        return AllOfSignal(tuple(spec.to_signal() for spec in self.signals))


SignalSpec = Annotated[
    CrdSignalSpec | ControllerSignalSpec | PhaseSignalSpec | AllOfSignalSpec,
    Field(discriminator="type"),
]
AllOfSignalSpec.model_rebuild()


class UnitSpec(_Spec):
    """One unit entry in a registry file."""

    name: str = Field(min_length=1)
    kind: UnitKind = UnitKind.OPERATOR
    dependencies: list[str] = Field(default_factory=list)
    readiness: SignalSpec | None = None

    def to_unit(self) -> Unit:
        return Unit(
            name=self.name,
            kind=self.kind,
            dependencies=tuple(self.dependencies),
            readiness_signal=self.readiness.to_signal() if self.readiness else None,
        )


class RegistryFile(_Spec):
    """Top-level registry document."""

    units: list[UnitSpec] = Field(min_length=1)
    cleanup_extras: list[UnitSpec] = Field(default_factory=list)


# =============================================================================
# Ordering
# =============================================================================


def _topological_order(units: tuple[Unit, ...]) -> tuple[Unit, ...]:
    """Order units so every unit follows its dependencies.

    Kahn's algorithm with a heap keyed on declaration position: among the
    units that are ready, the earliest declared goes first. A declaration
    that is already a valid order is therefore returned unchanged.
    """
    position = {unit.name: index for index, unit in enumerate(units)}
    pending = {unit.name: len(set(unit.dependencies)) for unit in units}
    dependents: dict[str, list[str]] = {unit.name: [] for unit in units}
    for unit in units:
        for dependency in set(unit.dependencies):
            dependents[dependency].append(unit.name)

    ready = [position[name] for name, count in pending.items() if count == 0]
    heapq.heapify(ready)

    ordered: list[Unit] = []
    while ready:
        unit = units[heapq.heappop(ready)]
        ordered.append(unit)
        for dependent in dependents[unit.name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    if len(ordered) != len(units):
        blocked = [unit.name for unit in units if pending[unit.name] > 0]
        raise CyclicDependency(blocked)
    return tuple(ordered)


# =============================================================================
# Registry
# =============================================================================


class UnitRegistry:
    """Immutable set of units with a validated dependency order.

    Raises on construction:
        ConfigurationError: Empty unit set or duplicate names
        UnknownUnit: A dependency names a unit that is not registered
        CyclicDependency: The dependency graph has a cycle
    """

    def __init__(self, units: Iterable[Unit], extras: Iterable[Unit] = ()) -> None:
        declared = tuple(units)
        trailing = tuple(extras)
        if not declared:
            raise ConfigurationError("Registry must contain at least one unit")

        seen: set[str] = set()
        for unit in (*declared, *trailing):
            if unit.name in seen:
                raise ConfigurationError(f"Duplicate unit name: {unit.name}")
            seen.add(unit.name)

        names = {unit.name for unit in declared}
        for unit in declared:
            for dependency in unit.dependencies:
                if dependency not in names:
                    raise UnknownUnit(
                        dependency, details=f"Declared as a dependency of {unit.name}"
                    )
                if dependency == unit.name:
                    raise CyclicDependency([unit.name])

        self._sync_order = _topological_order(declared)
        self._extras = trailing
        self._by_name = {unit.name: unit for unit in declared}

        if self._sync_order != declared:
            logger.debug(
                "Declared unit order is not a valid dependency order, using "
                + ", ".join(unit.name for unit in self._sync_order)
            )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def sync_order(self) -> tuple[Unit, ...]:
        """Units in dependency order."""
        return self._sync_order

    def cleanup_order(self) -> tuple[Unit, ...]:
        """Reverse of the sync order, followed by the trailing extras."""
        return (*reversed(self._sync_order), *self._extras)

    @property
    def extras(self) -> tuple[Unit, ...]:
        return self._extras

    def get(self, name: str) -> Unit:
        """Look up a unit by name.

        Raises:
            UnknownUnit: If no unit has that name
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownUnit(
                name, details="Known units: " + ", ".join(self.names())
            ) from None

    def readiness_signal(self, name: str) -> ReadinessSignal | None:
        """The readiness signal declared for a unit, if any."""
        return self.get(name).readiness_signal

    def names(self) -> list[str]:
        return [unit.name for unit in self._sync_order]

    def all_names(self) -> set[str]:
        """Every name the registry manages, extras included."""
        return {unit.name for unit in self.cleanup_order()}

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Unit]:
        return iter(self._sync_order)

    def __len__(self) -> int:
        return len(self._sync_order)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Any) -> UnitRegistry:
        """Build a registry from a parsed registry document.

        Raises:
            ConfigurationError: If the document does not match the schema
        """
        try:
            document = RegistryFile.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError("Invalid registry file", details=str(e)) from e
        return cls(
            (spec.to_unit() for spec in document.units),
            (spec.to_unit() for spec in document.cleanup_extras),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> UnitRegistry:
        """Load a registry from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Registry file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Registry file is not valid YAML: {path}", details=str(e)
            ) from e

        logger.info(f"Loading unit registry from {path}")
        return cls.from_mapping(data)


def default_registry() -> UnitRegistry:
    """Registry for the embedded operator stack."""
    return UnitRegistry(SYNC_UNITS, CLEANUP_EXTRAS)


def default_config_registry() -> UnitRegistry:
    """Registry for the cluster configuration application group."""
    return UnitRegistry(CONFIG_UNITS)
