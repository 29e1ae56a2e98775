"""Unit tests for controller factories."""

import pytest

from stagesync.infra.k8s import (
    KubectlController,
    KubernetesControllerSync,
    get_k8s_controller,
    get_k8s_controller_sync,
)
from stagesync.infra.k8s.kr8s_controller import Kr8sController


@pytest.fixture(autouse=True)
def _clear_factory_cache():
    get_k8s_controller.cache_clear()
    get_k8s_controller_sync.cache_clear()
    yield
    get_k8s_controller.cache_clear()
    get_k8s_controller_sync.cache_clear()


class TestGetK8sController:
    def test_default_backend_is_kr8s(self) -> None:
        controller = get_k8s_controller()

        assert isinstance(controller, Kr8sController)
        assert controller.kubectl_binary == "oc"

    def test_cli_backend_uses_binary(self) -> None:
        controller = get_k8s_controller("cli", "kubectl")

        assert isinstance(controller, KubectlController)
        assert controller.binary == "kubectl"

    def test_instances_are_cached_per_arguments(self) -> None:
        assert get_k8s_controller("cli", "oc") is get_k8s_controller("cli", "oc")
        assert get_k8s_controller("cli", "oc") is not get_k8s_controller(
            "cli", "kubectl"
        )


class TestGetK8sControllerSync:
    def test_wraps_cached_controller(self) -> None:
        wrapper = get_k8s_controller_sync("cli", "oc")

        assert isinstance(wrapper, KubernetesControllerSync)
        assert wrapper.controller is get_k8s_controller("cli", "oc")
        assert get_k8s_controller_sync("cli", "oc") is wrapper
