"""Tests for the upfront validation of installer flags."""

from pathlib import Path

import pytest

from orbitctl.core.channels import Channel
from orbitctl.core.cluster.fake import FakeClusterApi
from orbitctl.core.errors import ConfigurationError
from orbitctl.core.installer_config import (
    InstallerFlags,
    build_installer_config,
    default_deploy_installer,
    default_existing_installer,
    find_working_namespace,
    resolve_platform,
)
from orbitctl.core.platforms import Installer, Platform
from tests.builders import orbit_cluster, subscription


def _build(
    flags: InstallerFlags,
    installer: Installer = Installer.OLM,
    platform: Platform = Platform.KUBERNETES,
):
    return build_installer_config(
        flags, installer=installer, platform=platform, default_namespace="orbit"
    )


def test_defaults() -> None:
    config = _build(InstallerFlags())

    assert config.namespace == "orbit"
    assert config.channel is None
    assert config.version is None
    assert config.needs_confirmation
    assert config.olm_install_timeout == 600


def test_version_loses_its_v_prefix() -> None:
    assert _build(InstallerFlags(version="v7.22.1")).version == "7.22.1"
    assert _build(InstallerFlags(version="next")).version == "next"


def test_channel_is_parsed() -> None:
    assert _build(InstallerFlags(olm_channel="next")).channel is Channel.NEXT


def test_catalog_source_name_and_yaml_are_exclusive(tmp_path: Path) -> None:
    manifest = tmp_path / "catalog.yaml"
    manifest.write_text("kind: CatalogSource\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Only one of"):
        _build(
            InstallerFlags(
                catalog_source_name="mine",
                catalog_source_yaml=manifest,
                package_manifest_name="orbit",
                olm_channel="stable",
            )
        )


def test_catalog_source_yaml_requires_package_and_channel(tmp_path: Path) -> None:
    manifest = tmp_path / "catalog.yaml"
    manifest.write_text("kind: CatalogSource\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="--package-manifest-name"):
        _build(InstallerFlags(catalog_source_yaml=manifest, olm_channel="stable"))
    with pytest.raises(ConfigurationError, match="--olm-channel"):
        _build(InstallerFlags(catalog_source_yaml=manifest, package_manifest_name="orbit"))


@pytest.mark.parametrize(
    ("flags", "flag_name"),
    [
        (InstallerFlags(starting_csv="orbit-operator.v7.1.0"), "--starting-csv"),
        (InstallerFlags(olm_channel="next"), "--olm-channel"),
        (InstallerFlags(auto_update=False), "--auto-update"),
        (InstallerFlags(catalog_source_name="mine"), "--catalog-source-name"),
    ],
)
def test_olm_flags_are_rejected_for_operator_installer(
    flags: InstallerFlags, flag_name: str
) -> None:
    with pytest.raises(ConfigurationError, match=flag_name):
        _build(flags, installer=Installer.OPERATOR)


def test_cluster_monitoring_requires_openshift() -> None:
    with pytest.raises(ConfigurationError, match="--cluster-monitoring"):
        _build(InstallerFlags(cluster_monitoring=True))

    config = _build(InstallerFlags(cluster_monitoring=True), platform=Platform.OPENSHIFT)
    assert config.cluster_monitoring


def test_non_positive_timeouts_are_rejected() -> None:
    with pytest.raises(ConfigurationError, match="--pod-ready-timeout"):
        _build(InstallerFlags(pod_ready_timeout=0))


def test_olm_suggested_namespace_overrides_namespace() -> None:
    config = _build(InstallerFlags(namespace="mine", olm_suggested_namespace=True))

    assert config.namespace == "openshift-orbit"


def test_batch_or_yes_skip_confirmation() -> None:
    assert not _build(InstallerFlags(batch=True)).needs_confirmation
    assert not _build(InstallerFlags(assume_yes=True)).needs_confirmation


def test_cr_files_are_loaded(tmp_path: Path) -> None:
    cr = tmp_path / "cr.yaml"
    cr.write_text("kind: OrbitCluster\nspec:\n  server:\n    replicas: 2\n", encoding="utf-8")
    patch = tmp_path / "patch.yaml"
    patch.write_text("spec:\n  server:\n    debug: true\n", encoding="utf-8")

    config = _build(InstallerFlags(cr_yaml=cr, cr_patch_yaml=patch))

    assert config.orbit_cluster == {"kind": "OrbitCluster", "spec": {"server": {"replicas": 2}}}
    assert config.orbit_cluster_patch == {"spec": {"server": {"debug": True}}}


def test_invalid_yaml_is_a_configuration_error(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("spec: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Invalid YAML in --cr-yaml"):
        _build(InstallerFlags(cr_yaml=broken))


def test_yaml_must_be_a_mapping(tmp_path: Path) -> None:
    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="single YAML mapping"):
        _build(InstallerFlags(cr_patch_yaml=listing))


def test_missing_file_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Cannot read --cr-yaml"):
        _build(InstallerFlags(cr_yaml=tmp_path / "missing.yaml"))


def test_resolve_platform_prefers_flag_then_config_then_cluster() -> None:
    cluster = FakeClusterApi(openshift=True)

    assert resolve_platform("kubernetes", "openshift", cluster) is Platform.KUBERNETES
    assert resolve_platform(None, "kubernetes", cluster) is Platform.KUBERNETES
    assert resolve_platform(None, None, cluster) is Platform.OPENSHIFT


def test_unknown_platform_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Unknown platform 'minishift'"):
        resolve_platform("minishift", None, FakeClusterApi())


def test_default_deploy_installer() -> None:
    no_olm = FakeClusterApi(olm_preinstalled=False)
    kubernetes = FakeClusterApi()
    openshift = FakeClusterApi(openshift=True)

    assert default_deploy_installer(no_olm, InstallerFlags(), Platform.OPENSHIFT) is (
        Installer.OPERATOR
    )
    assert default_deploy_installer(kubernetes, InstallerFlags(), Platform.KUBERNETES) is (
        Installer.OPERATOR
    )
    assert default_deploy_installer(
        kubernetes, InstallerFlags(catalog_source_name="mine"), Platform.KUBERNETES
    ) is Installer.OLM
    assert default_deploy_installer(openshift, InstallerFlags(), Platform.OPENSHIFT) is (
        Installer.OLM
    )


def test_default_existing_installer_follows_the_subscription() -> None:
    with_subscription = FakeClusterApi(resources=[subscription()])
    all_namespaces = FakeClusterApi(
        resources=[subscription(namespace="openshift-operators")]
    )

    assert default_existing_installer(with_subscription, "orbit") is Installer.OLM
    assert default_existing_installer(all_namespaces, "orbit") is Installer.OLM
    assert default_existing_installer(FakeClusterApi(), "orbit") is Installer.OPERATOR


def test_find_working_namespace() -> None:
    elsewhere = FakeClusterApi(resources=[orbit_cluster(namespace="team-a")])
    two = FakeClusterApi(
        resources=[orbit_cluster(namespace="team-a"), orbit_cluster(namespace="team-b")]
    )

    assert find_working_namespace(elsewhere, "explicit", "orbit") == "explicit"
    assert find_working_namespace(elsewhere, None, "orbit") == "team-a"
    assert find_working_namespace(two, None, "orbit") == "orbit"
