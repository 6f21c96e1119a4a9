import pytest

from freyr.resources import (
    CAPTAIN_IMAGE,
    CONSCRIPT_IMAGE,
    captain_deployment,
    captain_service,
    captain_url,
    config_map_for,
    conscript_deployment,
    set_controller_reference,
)
from freyr.spec import PodSpec, Ship, ShipSpec


@pytest.fixture
def ship():
    return Ship(
        name="alpha",
        namespace="default",
        uid="uid-1",
        spec=ShipSpec(
            mode="trig",
            env_vars={"B": "2", "A": "1"},
            captain=PodSpec(env_vars={"C": "3"}),
            conscript=PodSpec(env_vars={"D": "4"}),
        ),
    )


def _container(deployment):
    return deployment["spec"]["template"]["spec"]["containers"][0]


def test_captain_url(ship):
    assert captain_url(ship) == "http://alpha-svc.default.svc.cluster.local:80"


def test_config_map_contents(ship):
    config = ship.spec.to_json()
    cm = config_map_for(ship, config)
    assert cm["metadata"]["name"] == "alpha-config"
    assert cm["metadata"]["namespace"] == "default"
    assert cm["data"] == {
        "CAPTAIN_URL": captain_url(ship),
        "OPERATOR_CONFIG": config,
        "NAME": "alpha",
        "NAMESPACE": "default",
    }
    assert cm["metadata"]["labels"]["app.kubernetes.io/managed-by"] == "ship-operator"
    assert "ownerReferences" not in cm["metadata"]


def test_captain_deployment_shape(ship):
    dep = captain_deployment(ship)
    container = _container(dep)
    assert dep["metadata"]["name"] == "alpha-captain"
    assert dep["spec"]["replicas"] == 1
    assert container["ports"] == [{"containerPort": 5001}]
    assert container["resources"]["limits"] == {"cpu": "50m", "memory": "256Mi"}
    assert container["envFrom"] == [{"configMapRef": {"name": "alpha-config"}}]
    assert [entry["name"] for entry in container["env"]] == ["NAME", "NAMESPACE", "A", "B", "C"]
    labels = dep["spec"]["selector"]["matchLabels"]
    assert labels == dep["spec"]["template"]["metadata"]["labels"]
    assert labels["app"] == "captain"
    assert labels["app.kubernetes.io/owner"] == "alpha"


def test_captain_deployment_default_image_written_to_spec(ship):
    dep = captain_deployment(ship)
    assert _container(dep)["image"] == CAPTAIN_IMAGE
    assert ship.spec.captain.image == CAPTAIN_IMAGE


def test_captain_deployment_keeps_custom_image(ship):
    ship.spec.captain.image = "registry.example.com/captain:dev"
    assert _container(captain_deployment(ship))["image"] == "registry.example.com/captain:dev"


def test_captain_deployment_owned_by_ship(ship):
    refs = captain_deployment(ship)["metadata"]["ownerReferences"]
    assert len(refs) == 1
    assert refs[0]["uid"] == "uid-1"
    assert refs[0]["kind"] == "Ship"
    assert refs[0]["controller"] is True


def test_label_dicts_are_independent(ship):
    dep = captain_deployment(ship)
    dep["spec"]["selector"]["matchLabels"]["extra"] = "x"
    assert "extra" not in dep["spec"]["template"]["metadata"]["labels"]


def test_conscript_deployment_shape(ship):
    dep = conscript_deployment(ship)
    container = _container(dep)
    assert dep["metadata"]["name"] == "alpha-conscript"
    assert dep["metadata"]["labels"]["app"] == "conscript"
    assert container["image"] == CONSCRIPT_IMAGE
    assert container["ports"] == [{"containerPort": 5003}]
    assert container["resources"]["limits"] == {"cpu": "5m", "memory": "50Mi"}
    first = container["env"][0]
    assert first["name"] == "CAPTAIN_URL"
    assert first["valueFrom"]["configMapKeyRef"] == {"name": "alpha-config", "key": "CAPTAIN_URL"}
    assert [entry["name"] for entry in container["env"][1:]] == ["A", "B", "D"]
    assert dep["spec"]["template"]["metadata"]["name"] == "alpha-conscript"


def test_captain_service(ship):
    svc = captain_service(ship, 5001)
    assert svc["metadata"]["name"] == "alpha-svc"
    assert svc["spec"]["ports"] == [
        {"name": "http", "protocol": "TCP", "port": 80, "targetPort": 5001}
    ]
    assert "app" not in svc["spec"]["selector"]
    assert svc["metadata"]["ownerReferences"][0]["name"] == "alpha"


def test_set_controller_reference_skips_cluster_scoped(ship):
    obj = {"metadata": {"name": "thing"}}
    set_controller_reference(ship, obj)
    assert obj == {"metadata": {"name": "thing"}}


def test_set_controller_reference_rejects_cross_namespace(ship):
    obj = {"metadata": {"name": "thing", "namespace": "other"}}
    with pytest.raises(ValueError):
        set_controller_reference(ship, obj)


def test_set_controller_reference_is_idempotent(ship):
    obj = {"metadata": {"name": "thing", "namespace": "default"}}
    set_controller_reference(ship, obj)
    set_controller_reference(ship, obj)
    assert len(obj["metadata"]["ownerReferences"]) == 1


def test_set_controller_reference_rejects_other_controller(ship):
    obj = {"metadata": {"name": "thing", "namespace": "default"}}
    set_controller_reference(ship, obj)
    other = Ship(name="beta", namespace="default", uid="uid-2")
    with pytest.raises(ValueError):
        set_controller_reference(other, obj)
    assert obj["metadata"]["ownerReferences"][0]["name"] == "alpha"