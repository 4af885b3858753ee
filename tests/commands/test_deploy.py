"""CLI tests for orbitctl deploy.

Deployments run end to end against FakeClusterApi, which plays the part of
OLM for the subscriptions it sees created.
"""

from pathlib import Path

from click.testing import CliRunner

from orbitctl.cli.cli import cli
from orbitctl.core.cluster.fake import FakeClusterApi
from orbitctl.core.context import OrbitContext
from tests.builders import deployment, orbit_cluster
from tests.fakes.time import FakeTime
from tests.fakes.user_feedback import FakeUserFeedback

NEXT_BUILD = "0.0.20210715-next.597729a"


def test_deploy_next_channel_with_olm() -> None:
    """A pre-release orbitctl subscribes to the next channel through its own catalog source."""
    cluster = FakeClusterApi(catalog_source_polls=2)
    time = FakeTime()
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(
        cluster=cluster, time=time, feedback=feedback, tool_version=NEXT_BUILD
    )

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "olm", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [
        ("create", "Namespace", "", "orbit"),
        ("create", "OperatorGroup", "orbit", "orbit-operator-group"),
        ("create", "CatalogSource", "orbit", "orbit-next-catalog"),
        ("create", "Subscription", "orbit", "orbit-subscription"),
        ("create", "OrbitCluster", "orbit", "orbit"),
    ]
    # Catalog source readiness is the only wait that has to poll
    assert time.sleep_calls == [1.0, 1.0]

    spec = cluster.created_subscriptions[0]["spec"]
    assert spec["channel"] == "next"
    assert spec["installPlanApproval"] == "Automatic"
    assert spec["name"] == "orbit-preview-kubernetes"
    assert spec["source"] == "orbit-next-catalog"
    assert spec["sourceNamespace"] == "orbit"
    assert "startingCSV" not in spec

    assert "Create CatalogSource for 'next' channel...[OK]" in feedback.infos
    assert "Approve installation" not in " ".join(feedback.infos)
    assert "Orbit is deployed in namespace 'orbit' with the 'olm' installer." in feedback.infos
    assert feedback.successes == ["Command deploy has completed successfully."]


def test_deploy_stable_version_with_olm_approves_pinned_install_plan() -> None:
    cluster = FakeClusterApi()
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(
        cli,
        [
            "deploy",
            "--installer",
            "olm",
            "--platform",
            "kubernetes",
            "--version",
            "v7.22.1",
            "--batch",
        ],
        obj=octx,
    )

    assert result.exit_code == 0, result.output
    spec = cluster.created_subscriptions[0]["spec"]
    assert spec["channel"] == "stable"
    assert spec["installPlanApproval"] == "Manual"
    assert spec["startingCSV"] == "orbit-operator.v7.22.1"
    assert spec["source"] == "operatorhubio-catalog"
    assert ("approve", "InstallPlan", "orbit", "install-00001") in cluster.mutations
    assert "Check cluster service version resource...[OK: orbit-operator.v7.22.1]" in (
        feedback.infos
    )


def test_deploy_orbit_cluster_comes_from_operator_examples_and_patch(tmp_path: Path) -> None:
    patch_file = tmp_path / "patch.yaml"
    patch_file.write_text("spec:\n  server:\n    replicas: 3\n", encoding="utf-8")
    cluster = FakeClusterApi()
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(
        cli,
        [
            "deploy",
            "--installer",
            "olm",
            "--platform",
            "kubernetes",
            "--cr-patch-yaml",
            str(patch_file),
            "--batch",
        ],
        obj=octx,
    )

    assert result.exit_code == 0, result.output
    created = cluster.get_resource("OrbitCluster", "orbit", "orbit")
    assert created is not None
    assert created["spec"]["server"] == {"replicas": 3}


def test_deploy_with_operator_installer() -> None:
    cluster = FakeClusterApi()
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback, tool_version="7.22.1")

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "operator", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [
        ("create", "Namespace", "", "orbit"),
        ("create", "ServiceAccount", "orbit", "orbit-operator"),
        ("create", "Role", "orbit", "orbit-operator"),
        ("create", "RoleBinding", "orbit", "orbit-operator"),
        ("create", "Deployment", "orbit", "orbit-operator"),
        ("create", "OrbitCluster", "orbit", "orbit"),
    ]
    operator = cluster.get_resource("Deployment", "orbit", "orbit-operator")
    assert operator is not None
    container = operator["spec"]["template"]["spec"]["containers"][0]
    assert container["image"] == "quay.io/orbit/orbit-operator:7.22.1"
    assert container["imagePullPolicy"] == "IfNotPresent"
    assert "Resolve operator image...[OK: quay.io/orbit/orbit-operator:7.22.1]" in feedback.infos


def test_deploy_halts_when_already_deployed() -> None:
    cluster = FakeClusterApi(
        resources=[orbit_cluster(), deployment(name="orbit-server", image="orbit/server:1")]
    )
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "operator", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 0, result.output
    assert cluster.mutations == []
    assert feedback.infos[-1] == "Orbit has been already deployed."
    assert feedback.successes == []


def test_deploy_suggests_start_when_deployed_but_stopped() -> None:
    cluster = FakeClusterApi(resources=[orbit_cluster()])
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "operator", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 0, result.output
    assert feedback.infos[-1] == (
        "Orbit has been already deployed. "
        "Use 'orbitctl start' to start a stopped Orbit instance."
    )


def test_deploy_rejects_olm_flags_for_operator_installer() -> None:
    cluster = FakeClusterApi()
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(
        cli,
        [
            "deploy",
            "--installer",
            "operator",
            "--platform",
            "kubernetes",
            "--olm-channel",
            "next",
        ],
        obj=octx,
    )

    assert result.exit_code == 1
    assert "Error: --olm-channel can only be used with the 'olm' installer" in result.output
    assert cluster.mutations == []


def test_deploy_fails_on_too_old_kubernetes() -> None:
    cluster = FakeClusterApi(kubernetes_version="v1.18.2")
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "operator", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 1
    assert "The minimal supported Kubernetes version is 1.19" in result.output
    assert cluster.mutations == []


def test_deploy_olm_requires_olm_on_the_cluster() -> None:
    cluster = FakeClusterApi(olm_preinstalled=False)
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "olm", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 1
    assert "OLM is required" in result.output
    # The namespace is created before the OLM check runs
    assert cluster.mutations == [("create", "Namespace", "", "orbit")]


def test_deploy_reports_failed_cluster_service_version() -> None:
    cluster = FakeClusterApi(csv_failure=("install strategy failed", "InstallComponentFailed"))
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(
        cli,
        ["deploy", "--installer", "olm", "--platform", "kubernetes", "--batch"],
        obj=octx,
    )

    assert result.exit_code == 1
    assert "Cause: install strategy failed. Reason: InstallComponentFailed." in result.output
    assert not any(mutation[1] == "OrbitCluster" for mutation in cluster.mutations)
