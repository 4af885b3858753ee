"""CLI tests for orbitctl start and stop."""

from click.testing import CliRunner

from orbitctl.cli.cli import cli
from orbitctl.core.cluster.fake import FakeClusterApi
from orbitctl.core.context import OrbitContext
from tests.builders import deployment, orbit_cluster
from tests.fakes.user_feedback import FakeUserFeedback


def _deployed_cluster(replicas: int) -> FakeClusterApi:
    return FakeClusterApi(
        resources=[
            deployment(name="orbit-operator", replicas=replicas),
            deployment(name="orbit-server", image="orbit/server:7.22.1", replicas=replicas),
            orbit_cluster(),
        ]
    )


def test_start_scales_operator_then_server() -> None:
    cluster = _deployed_cluster(replicas=0)
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["start"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [
        ("scale", "Deployment", "orbit", "orbit-operator"),
        ("scale", "Deployment", "orbit", "orbit-server"),
    ]
    server = cluster.get_resource("Deployment", "orbit", "orbit-server")
    assert server is not None
    assert server["spec"]["replicas"] == 1
    assert feedback.successes == ["Command start has completed successfully."]


def test_start_halts_when_already_running() -> None:
    cluster = _deployed_cluster(replicas=1)
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["start"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == []
    assert feedback.infos[-1] == "Orbit is already running in namespace 'orbit'."


def test_start_requires_a_deployment() -> None:
    octx = OrbitContext.for_test(cluster=FakeClusterApi())

    result = CliRunner().invoke(cli, ["start"], obj=octx)

    assert result.exit_code == 1
    assert "Orbit is not deployed in namespace 'orbit'" in result.output


def test_stop_scales_operator_then_server_down() -> None:
    cluster = _deployed_cluster(replicas=1)
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["stop"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == [
        ("scale", "Deployment", "orbit", "orbit-operator"),
        ("scale", "Deployment", "orbit", "orbit-server"),
    ]
    operator = cluster.get_resource("Deployment", "orbit", "orbit-operator")
    assert operator is not None
    assert operator["spec"]["replicas"] == 0


def test_stop_halts_when_already_stopped() -> None:
    cluster = _deployed_cluster(replicas=0)
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["stop"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations == []
    assert feedback.infos[-1] == "Orbit is already stopped in namespace 'orbit'."


def test_stop_finds_the_only_orbit_cluster_namespace() -> None:
    cluster = FakeClusterApi(
        resources=[
            deployment(name="orbit-operator", namespace="team-a"),
            deployment(name="orbit-server", namespace="team-a"),
            orbit_cluster(namespace="team-a"),
        ]
    )
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["stop"], obj=octx)

    assert result.exit_code == 0, result.output
    assert ("scale", "Deployment", "team-a", "orbit-server") in cluster.mutations
