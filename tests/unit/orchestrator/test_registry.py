"""Unit tests for the unit registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from stagesync.orchestrator.constants import CLEANUP_EXTRAS, SYNC_UNITS
from stagesync.orchestrator.errors import (
    ConfigurationError,
    CyclicDependency,
    UnknownUnit,
)
from stagesync.orchestrator.models import (
    AllOfSignal,
    CrdSignal,
    ResourcePhaseSignal,
    Unit,
    UnitKind,
)
from stagesync.orchestrator.registry import (
    UnitRegistry,
    default_config_registry,
    default_registry,
)


def _names(units: tuple[Unit, ...]) -> list[str]:
    return [unit.name for unit in units]


class TestDefaultRegistry:
    """Tests for the embedded operator stack."""

    def test_sync_order_preserves_declaration(self) -> None:
        """The embedded table is already a valid order and is kept as-is."""
        registry = default_registry()
        assert _names(registry.sync_order()) == _names(SYNC_UNITS)

    def test_cleanup_order_is_reverse_plus_extras(self) -> None:
        registry = default_registry()
        expected = [*reversed(_names(registry.sync_order())), "cluster-config"]
        assert _names(registry.cleanup_order()) == expected
        assert registry.extras == CLEANUP_EXTRAS

    def test_every_dependency_precedes_its_dependent(self) -> None:
        registry = default_registry()
        position = {name: i for i, name in enumerate(registry.names())}
        for unit in registry.sync_order():
            for dependency in unit.dependencies:
                assert position[dependency] < position[unit.name]

    def test_rhoai_instance_waits_for_crd_and_dsci(self) -> None:
        """instance-rhoai waits for the DSC CRD, then DSCInitialization Ready."""
        signal = default_registry().readiness_signal("instance-rhoai")
        assert isinstance(signal, AllOfSignal)
        crd, phase = signal.signals
        assert crd == CrdSignal("datascienceclusters.datasciencecluster.opendatahub.io")
        assert phase == ResourcePhaseSignal("dscinitialization", "default-dsci", "Ready")

    def test_operator_units_have_no_signal(self) -> None:
        assert default_registry().readiness_signal("nfd") is None

    def test_unknown_name_raises(self) -> None:
        with pytest.raises(UnknownUnit) as excinfo:
            default_registry().get("does-not-exist")
        assert excinfo.value.name == "does-not-exist"
        assert "nfd" in (excinfo.value.details or "")

    def test_membership_and_length(self) -> None:
        registry = default_registry()
        assert "instance-nfd" in registry
        assert "cluster-config" not in registry
        assert "cluster-config" in registry.all_names()
        assert len(registry) == len(SYNC_UNITS)

    def test_config_registry(self) -> None:
        registry = default_config_registry()
        assert registry.names() == ["config-rbac", "config-gateway", "config-maas"]
        assert all(unit.kind is UnitKind.CONFIG for unit in registry)
        assert registry.readiness_signal("config-rbac") is None
        assert registry.readiness_signal("config-maas") == CrdSignal(
            "gatewayclasses.gateway.networking.k8s.io"
        )


class TestOrdering:
    """Tests for the dependency sort."""

    def test_out_of_order_declaration_is_sorted(self) -> None:
        registry = UnitRegistry([Unit("b", dependencies=("a",)), Unit("a")])
        assert registry.names() == ["a", "b"]

    def test_ties_follow_declaration_order(self) -> None:
        registry = UnitRegistry(
            [
                Unit("c", dependencies=("a",)),
                Unit("b"),
                Unit("a"),
            ]
        )
        assert registry.names() == ["b", "a", "c"]

    def test_diamond(self) -> None:
        registry = UnitRegistry(
            [
                Unit("top"),
                Unit("left", dependencies=("top",)),
                Unit("right", dependencies=("top",)),
                Unit("bottom", dependencies=("right", "left")),
            ]
        )
        assert registry.names() == ["top", "left", "right", "bottom"]

    def test_cycle_raises(self) -> None:
        with pytest.raises(CyclicDependency) as excinfo:
            UnitRegistry(
                [
                    Unit("a", dependencies=("c",)),
                    Unit("b", dependencies=("a",)),
                    Unit("c", dependencies=("b",)),
                    Unit("free"),
                ]
            )
        assert set(excinfo.value.units) == {"a", "b", "c"}

    def test_self_dependency_raises(self) -> None:
        with pytest.raises(CyclicDependency):
            UnitRegistry([Unit("a", dependencies=("a",))])

    def test_unknown_dependency_raises(self) -> None:
        with pytest.raises(UnknownUnit) as excinfo:
            UnitRegistry([Unit("a", dependencies=("ghost",))])
        assert excinfo.value.name == "ghost"

    def test_duplicate_names_raise(self) -> None:
        with pytest.raises(ConfigurationError):
            UnitRegistry([Unit("a"), Unit("a")])

    def test_extra_clashing_with_unit_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            UnitRegistry([Unit("a")], [Unit("a")])

    def test_empty_registry_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            UnitRegistry([])


class TestRegistryFile:
    """Tests for YAML registry loading."""

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "units.yaml"
        path.write_text(
            """
units:
  - name: rhoai-operator
  - name: instance-rhoai
    kind: instance
    dependencies: [rhoai-operator]
    readiness:
      type: all_of
      signals:
        - type: crd
          name: datascienceclusters.datasciencecluster.opendatahub.io
        - type: phase
          kind: dscinitialization
          name: default-dsci
          expected_phase: Ready
  - name: nfd
    readiness:
      type: controller
      name_prefix: nfd
      namespace: openshift-nfd
cleanup_extras:
  - name: cluster-config
    kind: config
"""
        )

        registry = UnitRegistry.from_yaml(path)

        assert registry.names() == ["rhoai-operator", "instance-rhoai", "nfd"]
        assert _names(registry.cleanup_order())[-1] == "cluster-config"
        signal = registry.readiness_signal("instance-rhoai")
        assert isinstance(signal, AllOfSignal)
        assert signal.signals[1] == ResourcePhaseSignal(
            "dscinitialization", "default-dsci", "Ready"
        )
        nfd = registry.readiness_signal("nfd")
        assert nfd is not None and nfd.describe() == "CSV nfd* in openshift-nfd"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            UnitRegistry.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("units: [unclosed\n")
        with pytest.raises(ConfigurationError, match="not valid YAML"):
            UnitRegistry.from_yaml(path)

    def test_unknown_signal_type(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid registry file"):
            UnitRegistry.from_mapping(
                {"units": [{"name": "a", "readiness": {"type": "magic"}}]}
            )

    def test_unknown_field(self) -> None:
        with pytest.raises(ConfigurationError):
            UnitRegistry.from_mapping({"units": [{"name": "a", "wait": 10}]})

    def test_no_units(self) -> None:
        with pytest.raises(ConfigurationError):
            UnitRegistry.from_mapping({"units": []})

    def test_cycle_in_file(self) -> None:
        with pytest.raises(CyclicDependency):
            UnitRegistry.from_mapping(
                {
                    "units": [
                        {"name": "a", "dependencies": ["b"]},
                        {"name": "b", "dependencies": ["a"]},
                    ]
                }
            )
