"""Kubernetes manifests for the config map, deployments and service a ship owns."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from .spec import Ship

MANAGED_BY = "ship-operator"
CAPTAIN_IMAGE = "australia-southeast2-docker.pkg.dev/freyr-operator/imgs/captain:latest"
CONSCRIPT_IMAGE = "australia-southeast2-docker.pkg.dev/freyr-operator/imgs/conscript:latest"
CAPTAIN_PORT = 5001
CONSCRIPT_PORT = 5003
SERVICE_PORT = 80
PULL_IF_NOT_PRESENT = "IfNotPresent"

Manifest = dict[str, Any]


def captain_url(ship: Ship) -> str:
    """Return the in-cluster URL of the ship's captain service."""
    return f"http://{ship.name}-svc.{ship.namespace}.svc.cluster.local:{SERVICE_PORT}"


def config_map_for(ship: Ship, operator_config: str) -> Manifest:
    """Build the config map shared by the captain and conscript workloads."""
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": _config_name(ship),
            "namespace": ship.namespace,
            "labels": _owner_labels(ship),
        },
        "data": {
            "CAPTAIN_URL": captain_url(ship),
            "OPERATOR_CONFIG": operator_config,
            "NAME": ship.name,
            "NAMESPACE": ship.namespace,
        },
    }


def set_controller_reference(owner: Ship, obj: Manifest) -> None:
    """Mark ``owner`` as the controller of a namespaced ``obj``.

    Cluster-scoped objects (no namespace) are left untouched. Raises
    ValueError for a cross-namespace owner or when another controller
    already owns the object.
    """
    metadata = obj.setdefault("metadata", {})
    namespace = metadata.get("namespace", "")
    if not namespace:
        return
    if owner.namespace and owner.namespace != namespace:
        raise ValueError(
            "cross-namespace owner references are disallowed, "
            f"owner's namespace {owner.namespace}, obj's namespace {namespace}"
        )

    ref = {
        "apiVersion": owner.api_version,
        "kind": owner.kind,
        "name": owner.name,
        "uid": owner.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }
    refs = metadata.get("ownerReferences") or []
    current = next((existing for existing in refs if existing.get("controller")), None)
    if current is not None and not _same_owner(current, ref):
        raise ValueError(
            f"Object {namespace}/{metadata.get('name', '')} is already owned by "
            f"another {current.get('kind', '')} controller {current.get('name', '')}"
        )

    if any(_same_owner(existing, ref) for existing in refs):
        metadata["ownerReferences"] = [
            ref if _same_owner(existing, ref) else existing for existing in refs
        ]
    else:
        metadata["ownerReferences"] = [*refs, ref]


def captain_deployment(ship: Ship) -> Manifest:
    """Build the single-replica captain deployment for ``ship``.

    Fills in the default captain image on the ship's spec when none is set.
    """
    if not ship.spec.captain.image:
        ship.spec.captain.image = CAPTAIN_IMAGE
    labels = {"app": "captain", **_owner_labels(ship)}
    name = f"{ship.name}-captain"

    env = [
        {"name": "NAME", "value": ship.name},
        {"name": "NAMESPACE", "value": ship.namespace},
        *_env_entries(ship.spec.env_vars, ship.spec.captain.env_vars),
    ]
    container = {
        "image": ship.spec.captain.image,
        "name": name,
        "ports": [{"containerPort": CAPTAIN_PORT}],
        "imagePullPolicy": PULL_IF_NOT_PRESENT,
        "resources": {"limits": {"cpu": "50m", "memory": "256Mi"}},
        "env": env,
        "envFrom": [{"configMapRef": {"name": _config_name(ship)}}],
    }
    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": ship.namespace},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {"containers": [container]},
            },
        },
    }
    set_controller_reference(ship, deployment)
    return deployment


def captain_service(ship: Ship, container_port: int) -> Manifest:
    """Build the service exposing the captain on port 80."""
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": f"{ship.name}-svc", "namespace": ship.namespace},
        "spec": {
            "selector": _owner_labels(ship),
            "ports": [
                {
                    "name": "http",
                    "protocol": "TCP",
                    "port": SERVICE_PORT,
                    "targetPort": container_port,
                }
            ],
        },
    }
    set_controller_reference(ship, service)
    return service


def conscript_deployment(ship: Ship) -> Manifest:
    """Build the conscript deployment, starting at one replica.

    Fills in the default conscript image on the ship's spec when none is set.
    """
    if not ship.spec.conscript.image:
        ship.spec.conscript.image = CONSCRIPT_IMAGE
    labels = {"app": "conscript", **_owner_labels(ship)}
    name = f"{ship.name}-conscript"

    env = [
        {
            "name": "CAPTAIN_URL",
            "valueFrom": {
                "configMapKeyRef": {"name": _config_name(ship), "key": "CAPTAIN_URL"}
            },
        },
        *_env_entries(ship.spec.env_vars, ship.spec.conscript.env_vars),
    ]
    container = {
        "image": ship.spec.conscript.image,
        "name": name,
        "ports": [{"containerPort": CONSCRIPT_PORT}],
        "imagePullPolicy": PULL_IF_NOT_PRESENT,
        "resources": {"limits": {"cpu": "5m", "memory": "50Mi"}},
        "env": env,
    }
    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": ship.namespace, "labels": dict(labels)},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {
                    "labels": dict(labels),
                    "name": name,
                    "namespace": ship.namespace,
                },
                "spec": {"containers": [container]},
            },
        },
    }
    set_controller_reference(ship, deployment)
    return deployment


def _config_name(ship: Ship) -> str:
    return f"{ship.name}-config"


def _owner_labels(ship: Ship) -> dict[str, str]:
    return {
        "app.kubernetes.io/managed-by": MANAGED_BY,
        "app.kubernetes.io/owner": ship.name,
        "app.kubernetes.io/owner-ns": ship.namespace,
    }


def _env_entries(*maps: Mapping[str, str] | None) -> Iterator[dict[str, str]]:
    for values in maps:
        if values:
            for key in sorted(values):
                yield {"name": key, "value": values[key]}


def _api_group(api_version: str) -> str:
    return api_version.rpartition("/")[0]


def _same_owner(left: Mapping[str, Any], right: Mapping[str, Any]) -> bool:
    return (
        _api_group(left.get("apiVersion", "")) == _api_group(right.get("apiVersion", ""))
        and left.get("kind") == right.get("kind")
        and left.get("name") == right.get("name")
    )