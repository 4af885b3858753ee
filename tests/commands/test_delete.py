"""CLI tests for orbitctl delete."""

from click.testing import CliRunner

from orbitctl.cli.cli import cli
from orbitctl.core.cluster.fake import FakeClusterApi
from orbitctl.core.context import OrbitContext
from tests.builders import deployment, orbit_cluster, subscription
from tests.fakes.user_feedback import FakeUserFeedback


def test_delete_removes_operator_installation() -> None:
    cluster = FakeClusterApi(
        namespaces=["orbit"],
        resources=[deployment(name="orbit-operator"), orbit_cluster()],
    )
    feedback = FakeUserFeedback()
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["delete", "--yes"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations[0] == ("delete", "OrbitCluster", "orbit", "orbit")
    assert ("delete", "Deployment", "orbit", "orbit-operator") in cluster.mutations
    assert ("delete", "ServiceAccount", "orbit", "orbit-operator") in cluster.mutations
    assert ("delete", "Namespace", "", "orbit") not in cluster.mutations
    assert cluster.get_resource("Deployment", "orbit", "orbit-operator") is None
    assert cluster.get_namespace("orbit") is not None
    assert feedback.prompts == []
    assert feedback.successes == ["Command delete has completed successfully."]


def test_delete_removes_olm_subscription() -> None:
    cluster = FakeClusterApi(
        resources=[
            subscription(
                status={"installedCSV": "orbit-operator.v7.22.1", "state": "AtLatestKnown"}
            ),
            {
                "kind": "ClusterServiceVersion",
                "metadata": {"name": "orbit-operator.v7.22.1", "namespace": "orbit"},
            },
            {
                "kind": "OperatorGroup",
                "metadata": {"name": "orbit-operator-group", "namespace": "orbit"},
            },
            orbit_cluster(),
        ]
    )
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["delete", "--batch"], obj=octx)

    assert result.exit_code == 0, result.output
    mutations = cluster.mutations
    assert mutations.index(("delete", "OrbitCluster", "orbit", "orbit")) < mutations.index(
        ("delete", "Subscription", "orbit", "orbit-subscription")
    )
    assert ("delete", "ClusterServiceVersion", "orbit", "orbit-operator.v7.22.1") in mutations
    assert ("delete", "OperatorGroup", "orbit", "orbit-operator-group") in mutations
    assert cluster.get_resource("Subscription", "orbit", "orbit-subscription") is None


def test_delete_namespace_when_asked() -> None:
    cluster = FakeClusterApi(namespaces=["orbit"], resources=[orbit_cluster()])
    octx = OrbitContext.for_test(cluster=cluster)

    result = CliRunner().invoke(cli, ["delete", "--delete-namespace", "--yes"], obj=octx)

    assert result.exit_code == 0, result.output
    assert cluster.mutations[-1] == ("delete", "Namespace", "", "orbit")
    assert cluster.get_namespace("orbit") is None


def test_delete_asks_for_confirmation() -> None:
    cluster = FakeClusterApi(resources=[orbit_cluster()])
    feedback = FakeUserFeedback(confirm_answers=[False])
    octx = OrbitContext.for_test(cluster=cluster, feedback=feedback)

    result = CliRunner().invoke(cli, ["delete"], obj=octx)

    assert result.exit_code == 0, result.output
    assert feedback.prompts == [
        "You're going to remove Orbit server in namespace 'orbit'. "
        "If you want to continue - press Y"
    ]
    assert "Delete cancelled by user." in result.output
    assert cluster.mutations == []
