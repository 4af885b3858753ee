"""Tests for the OLM simulation in FakeClusterApi."""

import pytest

from orbitctl.core.cluster.fake import FakeClusterApi
from tests.builders import subscription


def _manifest(approval: str) -> dict:
    manifest = subscription(approval=approval)
    del manifest["status"]
    return manifest


def test_install_plan_appears_after_configured_polls() -> None:
    cluster = FakeClusterApi(install_plan_polls=1)
    cluster.create_subscription(_manifest("Automatic"))

    first = cluster.get_subscription("orbit", "orbit-subscription")
    second = cluster.get_subscription("orbit", "orbit-subscription")

    assert first is not None and second is not None
    assert "installplan" not in first["status"]
    assert second["status"]["installplan"] == {"name": "install-00001"}


def test_automatic_subscription_installs_without_approval() -> None:
    cluster = FakeClusterApi(channel_heads={"stable": "orbit-operator.v7.22.1"})
    cluster.create_subscription(_manifest("Automatic"))

    installed = cluster.get_subscription("orbit", "orbit-subscription")

    assert installed is not None
    status = installed["status"]
    assert status["state"] == "AtLatestKnown"
    assert status["installedCSV"] == "orbit-operator.v7.22.1"
    csv = cluster.get_cluster_service_version("orbit", "orbit-operator.v7.22.1")
    assert csv is not None
    assert csv["status"]["phase"] == "Succeeded"


def test_manual_subscription_waits_for_approval() -> None:
    cluster = FakeClusterApi()
    cluster.create_subscription(_manifest("Manual"))

    pending = cluster.get_subscription("orbit", "orbit-subscription")
    assert pending is not None
    assert pending["status"]["state"] == "UpgradePending"
    assert cluster.list_cluster_service_versions("orbit") == []

    cluster.approve_install_plan("orbit", "install-00001")

    installed = cluster.get_subscription("orbit", "orbit-subscription")
    assert installed is not None
    assert installed["status"]["state"] == "AtLatestKnown"
    assert cluster.mutations[-1] == ("approve", "InstallPlan", "orbit", "install-00001")


def test_creating_an_existing_object_fails() -> None:
    cluster = FakeClusterApi(namespaces=["orbit"])

    with pytest.raises(ValueError, match="already exists"):
        cluster.create_namespace("orbit", {})


def test_deleting_a_namespace_removes_its_objects() -> None:
    cluster = FakeClusterApi(namespaces=["orbit"], resources=[subscription()])

    cluster.delete_namespace("orbit")

    assert cluster.get_namespace("orbit") is None
    assert cluster.list_subscriptions("orbit") == []
