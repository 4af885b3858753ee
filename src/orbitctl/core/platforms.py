"""Cluster families and installer strategies."""

from enum import Enum


class Platform(Enum):
    """Cluster family orbitctl deploys to."""

    KUBERNETES = "kubernetes"
    OPENSHIFT = "openshift"


class Installer(Enum):
    """How the operator gets onto the cluster.

    OPERATOR applies the operator deployment directly; OLM subscribes to the
    orbit package and lets the Operator Lifecycle Manager install it.
    """

    OPERATOR = "operator"
    OLM = "olm"
