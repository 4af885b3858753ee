"""CLI tests for orbitctl update with both installers."""

from pathlib import Path

from click.testing import CliRunner

from orbitctl.cli.cli import cli
from orbitctl.core.cluster.fake import FakeClusterApi
from orbitctl.core.context import OrbitContext
from orbitctl.core.releases.fake import FakeReleaseResolver
from orbitctl.core.releases.types import ReleaseArtifact
from tests.builders import deployment, install_plan, orbit_cluster, subscription
from tests.fakes.user_feedback import FakeUserFeedback

PENDING_STATUS = {
    "state": "UpgradePending",
    "installedCSV": "orbit-operator.v7.22.1",
    "currentCSV": "orbit-operator.v7.23.0",
    "installplan": {"name": "install-abcde"},
    "conditions": [{"type": "InstallPlanPending", "status": "True"}],
}


def _olm_cluster(status: dict, approval: str = "Manual") -> FakeClusterApi:
    return FakeClusterApi(
        resources=[
            subscription(approval=approval, status=status),
            install_plan(name="install-abcde", csv="orbit-operator.v7.23.0"),
            orbit_cluster(),
        ]
    )


def _operator_cluster(image: str = "quay.io/orbit/orbit-operator:7.22.1") -> FakeClusterApi:
    return FakeClusterApi(
        resources=[deployment(name="orbit-operator", image=image), orbit_cluster()]
    )


# ============================================================================
# OLM installer
# ============================================================================


def test_olm_update_at_latest_known_changes_nothing() -> None:
    cluster = _olm_cluster(
        {
            "state": "AtLatestKnown",
            "installedCSV": "orbit-operator.v7.22.1",
            "currentCSV": "orbit-operator.v7.22.1",
        }
    )
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["update", "--batch"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == []
    assert feedback.infos[-1] == (
        "Everything is up to date. Installed the latest known version '7.22.1'."
    )
    assert feedback.prompts == []


def test_olm_update_approves_pending_install_plan() -> None:
    cluster = _olm_cluster(PENDING_STATUS)
    feedback = FakeUserFeedback(confirm_answers=[True])
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["update"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [("approve", "InstallPlan", "orbit", "install-abcde")]
    assert feedback.prompts == ["If you want to continue - press Y"]
    assert "You are going to update Orbit 7.22.1 to 7.23.0." in feedback.infos
    assert "Operator is updated from 7.22.1 to 7.23.0 version" in feedback.infos
    assert feedback.successes == ["Command update has completed successfully."]


def test_olm_update_declined_is_a_clean_abort() -> None:
    cluster = _olm_cluster(PENDING_STATUS)
    feedback = FakeUserFeedback(confirm_answers=[False])
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["update"], obj=octx)

    assert result.exit_code == 0, result.output
    assert "Update cancelled by user." in result.output
    assert cluster.mutations == []


def test_olm_update_with_automatic_approval_is_left_to_olm() -> None:
    cluster = _olm_cluster(PENDING_STATUS, approval="Automatic")
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["update", "--batch"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == []
    assert feedback.infos[-1].startswith("OLM itself manages operator updates")


def test_olm_update_at_latest_known_still_patches_orbit_cluster(tmp_path: Path) -> None:
    patch_file = tmp_path / "patch.yaml"
    patch_file.write_text("spec:\n  server:\n    replicas: 3\n", encoding="utf-8")
    cluster = _olm_cluster(
        {
            "state": "AtLatestKnown",
            "installedCSV": "orbit-operator.v7.22.1",
            "currentCSV": "orbit-operator.v7.22.1",
        }
    )
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(
        cli, ["update", "--cr-patch-yaml", str(patch_file), "--batch"], obj=octx
    )

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [("patch", "OrbitCluster", "orbit", "orbit")]
    patched = cluster.get_resource("OrbitCluster", "orbit", "orbit")
    assert patched is not None
    assert patched["spec"]["server"]["replicas"] == 3
    assert (
        "Everything is up to date. Installed the latest known version '7.22.1'."
        in feedback.infos
    )
    assert feedback.successes == ["Command update has completed successfully."]


def test_olm_update_with_automatic_approval_still_patches_orbit_cluster(
    tmp_path: Path,
) -> None:
    patch_file = tmp_path / "patch.yaml"
    patch_file.write_text("spec:\n  server:\n    replicas: 3\n", encoding="utf-8")
    cluster = _olm_cluster(PENDING_STATUS, approval="Automatic")
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(
        cli, ["update", "--cr-patch-yaml", str(patch_file), "--batch"], obj=octx
    )

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [("patch", "OrbitCluster", "orbit", "orbit")]
    assert any(info.startswith("OLM itself manages operator updates") for info in feedback.infos)
    assert feedback.successes == ["Command update has completed successfully."]


def test_olm_update_in_flight_is_a_conflict() -> None:
    cluster = _olm_cluster(
        {
            "state": "UpgradeAvailable",
            "installedCSV": "orbit-operator.v7.22.1",
            "currentCSV": "orbit-operator.v7.22.1",
        }
    )
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["update", "--batch"], obj=octx)

    assert result.exit_code == 1
    assert "is in progress" in result.output
    assert cluster.mutations == []


def test_olm_update_rejects_explicit_version() -> None:
    cluster = _olm_cluster(PENDING_STATUS)
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["update", "--version", "7.23.0", "--batch"], obj=octx)

    assert result.exit_code == 1
    assert "cannot be used with the 'olm' installer" in result.output
    assert cluster.mutations == []


# ============================================================================
# Operator installer
# ============================================================================


def test_operator_update_to_tool_version() -> None:
    cluster = _operator_cluster()
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback, tool_version="7.23.0")

    result = CliRunner().invoke(cli, ["update", "--yes"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [("set-image", "Deployment", "orbit", "orbit-operator")]
    operator = cluster.get_resource("Deployment", "orbit", "orbit-operator")
    assert operator is not None
    image = operator["spec"]["template"]["spec"]["containers"][0]["image"]
    assert image == "quay.io/orbit/orbit-operator:7.23.0"
    assert feedback.prompts == []
    assert (
        "Operator image is updated from quay.io/orbit/orbit-operator:7.22.1 to "
        "quay.io/orbit/orbit-operator:7.23.0"
    ) in feedback.infos


def test_operator_downgrade_is_rejected_before_prompting() -> None:
    cluster = _operator_cluster()
    feedback = FakeUserFeedback()
    releases = FakeReleaseResolver(
        artifacts={
            "7.20.0": ReleaseArtifact(
                tag="7.20.0", commit_id="abc123", download_url="https://example/abc123"
            )
        }
    )
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback, releases=releases)

    result = CliRunner().invoke(cli, ["update", "--version", "7.20.0"], obj=octx)

    assert result.exit_code == 1
    assert "Error: Downgrading is not supported" in result.output
    assert feedback.prompts == []
    assert cluster.mutations == []


def test_operator_update_unknown_version() -> None:
    cluster = _operator_cluster()
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["update", "--version", "9.9.9", "--batch"], obj=octx)

    assert result.exit_code == 1
    assert "Version '9.9.9' of Orbit was not found" in result.output


def test_operator_update_without_changes_is_a_no_op() -> None:
    cluster = _operator_cluster()
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["update", "--batch"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == []
    assert feedback.infos[-1] == "Orbit is already up to date."


def test_operator_update_patch_only(tmp_path: Path) -> None:
    patch_file = tmp_path / "patch.yaml"
    patch_file.write_text("spec:\n  server:\n    replicas: 2\n", encoding="utf-8")
    cluster = _operator_cluster()
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(
        cli, ["update", "--cr-patch-yaml", str(patch_file), "--batch"], obj=octx
    )

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [("patch", "OrbitCluster", "orbit", "orbit")]
    patched = cluster.get_resource("OrbitCluster", "orbit", "orbit")
    assert patched is not None
    assert patched["spec"]["server"] == {"replicas": 2}


def test_update_without_deployment() -> None:
    cluster = FakeClusterApi()
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["update", "--batch"], obj=octx)

    assert result.exit_code == 1
    assert "Deployment 'orbit-operator' was not found in namespace 'orbit'" in result.output
