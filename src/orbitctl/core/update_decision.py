"""Decide whether an operator image update may proceed.

Official images carry a release tag and are ordered by version. Downgrades
and upgrades the running orbitctl is too old to know about are rejected
before anything is shown to the user. Custom images are opaque: any change
is a plain replacement.
"""

from dataclasses import dataclass
from enum import Enum

from orbitctl.core.constants import DEFAULT_OPERATOR_IMAGE_NAME
from orbitctl.core.errors import DowngradeRejectedError, ToolTooOldError
from orbitctl.core.versions import (
    NEXT_TAG,
    Ordering,
    Release,
    StableRelease,
    compare_releases,
    is_prerelease_tool_version,
    is_upgrade,
    parse_release,
)


@dataclass(frozen=True)
class OperatorImageRef:
    """Operator container image split into name and tag."""

    name: str
    tag: str

    @staticmethod
    def parse(image: str) -> "OperatorImageRef":
        """Split "registry/name:tag" (or "name@digest") into its parts.

        A missing tag means "latest". A port in the registry host is not
        mistaken for a tag.
        """
        if "@" in image:
            name, _, digest = image.partition("@")
            return OperatorImageRef(name=name, tag=digest)
        name, separator, tag = image.rpartition(":")
        if not separator or "/" in tag:
            return OperatorImageRef(name=image, tag="latest")
        return OperatorImageRef(name=name, tag=tag)

    @property
    def release(self) -> Release | None:
        try:
            return parse_release(self.tag)
        except ValueError:
            return None

    @property
    def is_official(self) -> bool:
        """Official images are published by the project and tagged with a release."""
        return self.name == DEFAULT_OPERATOR_IMAGE_NAME and self.release is not None

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


def default_operator_image(tool_version: str, version: str | None = None) -> OperatorImageRef:
    """Official image matching an explicit version, or the running orbitctl."""
    if version is not None:
        return OperatorImageRef(name=DEFAULT_OPERATOR_IMAGE_NAME, tag=version)
    if is_prerelease_tool_version(tool_version):
        return OperatorImageRef(name=DEFAULT_OPERATOR_IMAGE_NAME, tag=NEXT_TAG)
    return OperatorImageRef(name=DEFAULT_OPERATOR_IMAGE_NAME, tag=tool_version)


class UpdateKind(Enum):
    NO_OP = "no-op"
    PATCH_ONLY = "patch-only"
    NEXT_REFRESH = "next-refresh"
    UPGRADE = "upgrade"
    REPLACE_IMAGE = "replace-image"


@dataclass(frozen=True)
class UpdateDecision:
    """Outcome of decide_update().

    Fields:
        kind: What the update does
        message: Line shown to the user before confirmation
        requires_confirmation: The update mutates the cluster and must be
            confirmed unless batch mode or --yes is in effect
    """

    kind: UpdateKind
    message: str
    requires_confirmation: bool

    @property
    def proceed(self) -> bool:
        return self.kind is not UpdateKind.NO_OP


def decide_update(
    deployed: OperatorImageRef,
    new: OperatorImageRef,
    *,
    patch_requested: bool,
    tool_version: str,
) -> UpdateDecision:
    """Decide what replacing the deployed operator image with the new one means.

    Args:
        deployed: Image currently run by the operator deployment
        new: Image the update would install
        patch_requested: A custom resource patch was supplied with the update
        tool_version: Version of the running orbitctl

    Returns:
        The decision; NO_OP when there is nothing to do

    Raises:
        DowngradeRejectedError: If the new official image is older
        ToolTooOldError: If the new official stable image is newer than orbitctl
    """
    if not (deployed.is_official and new.is_official):
        return UpdateDecision(
            kind=UpdateKind.REPLACE_IMAGE,
            message=_replacement_message(deployed, new),
            requires_confirmation=True,
        )

    old_release = deployed.release
    new_release = new.release
    assert old_release is not None and new_release is not None

    if old_release == new_release:
        if new.tag == NEXT_TAG:
            return UpdateDecision(
                kind=UpdateKind.NEXT_REFRESH,
                message=f"Updating current Orbit {NEXT_TAG} version to a new one.",
                requires_confirmation=True,
            )
        if patch_requested:
            return UpdateDecision(
                kind=UpdateKind.PATCH_ONLY,
                message="Patching existing Orbit installation.",
                requires_confirmation=True,
            )
        return UpdateDecision(
            kind=UpdateKind.NO_OP,
            message="Orbit is already up to date.",
            requires_confirmation=False,
        )

    if not is_upgrade(old_release, new_release):
        raise DowngradeRejectedError(
            f"Downgrading is not supported: the deployed operator image is {deployed} "
            f"and {new} is older."
        )

    if new.tag == NEXT_TAG:
        return UpdateDecision(
            kind=UpdateKind.UPGRADE,
            message=f"You are going to update Orbit {deployed.tag} to {NEXT_TAG} version.",
            requires_confirmation=True,
        )

    if not _tool_supports(tool_version, new_release):
        raise ToolTooOldError(
            f"It is not possible to update Orbit to {new.tag} using the current "
            f"'{tool_version}' version of orbitctl. Update orbitctl to a newer version "
            "and then try again."
        )

    return UpdateDecision(
        kind=UpdateKind.UPGRADE,
        message=f"You are going to update Orbit {deployed.tag} to {new.tag}.",
        requires_confirmation=True,
    )


def _tool_supports(tool_version: str, target: Release) -> bool:
    if is_prerelease_tool_version(tool_version):
        return True
    try:
        tool_release = parse_release(tool_version)
    except ValueError:
        return False
    if not isinstance(tool_release, StableRelease):
        return True
    return compare_releases(tool_release, target) is not Ordering.LESS


def _replacement_message(deployed: OperatorImageRef, new: OperatorImageRef) -> str:
    if deployed == new:
        return f"You are going to replace Orbit operator image {new}."
    if deployed.is_official:
        return f"You are going to update official {deployed} image with user provided one: {new}"
    if new.is_official:
        return f"You are going to update user provided image {deployed} with official one: {new}"
    return f"You are going to update {deployed} to {new}"
