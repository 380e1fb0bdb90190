import pytest

from prefab.container import Container, ServiceContainer


@pytest.fixture
def application() -> ServiceContainer:
    return ServiceContainer({"app.db.Database": "database"})


def test_child_sees_parent_instances(application):
    request = ServiceContainer(parent=application)

    assert request.has("app.db.Database")
    assert request["app.db.Database"] == "database"


def test_attached_instances_stay_in_the_child(application):
    request = ServiceContainer(parent=application)
    request.attach("app.auth.User", "user")

    assert "app.auth.User" in request
    assert not application.has("app.auth.User")


def test_child_instances_shadow_the_parent(application):
    request = ServiceContainer({"app.db.Database": "replica"}, parent=application)

    assert request.get("app.db.Database") == "replica"


def test_missing_instances_raise_key_error(application):
    with pytest.raises(KeyError):
        application.get("app.auth.User")


def test_service_container_satisfies_the_container_protocol(application):
    assert isinstance(application, Container)
