import pytest

from prefab.store import ConfigStore, deep_merge, to_path


@pytest.fixture
def store() -> ConfigStore:
    return ConfigStore(
        {
            "preference": {
                "app.mail.Mailer": {"class": "app.smtp.SmtpMailer", "singleton": True},
            },
            "package": {"core": {"tags": ["a", "b"]}},
        }
    )


def test_string_paths_split_on_dots():
    assert to_path("preference.app") == ("preference", "app")
    assert to_path("") == ()
    assert to_path(("preference", "app.mail.Mailer")) == ("preference", "app.mail.Mailer")


def test_tuple_paths_keep_dotted_service_ids_as_one_segment(store):
    assert store.get(("preference", "app.mail.Mailer", "singleton")) is True
    assert store.has(("preference", "app.mail.Mailer"))
    assert not store.has("preference.app.mail.Mailer")
    assert ("package", "core") in store


def test_get_returns_default_for_missing_paths(store):
    assert store.get(("preference", "missing")) is None
    assert store.get("package.core.tags.0", "fallback") == "fallback"


def test_set_creates_intermediate_mappings():
    store = ConfigStore()
    store.set(("preference", "app.Clock", "class"), "app.clock.Clock")

    assert store.as_dict() == {"preference": {"app.Clock": {"class": "app.clock.Clock"}}}


def test_set_refuses_to_replace_the_root(store):
    with pytest.raises(ValueError):
        store.set((), {})


def test_merge_replaces_lists_and_merges_mappings(store):
    store.merge({"package": {"core": {"tags": ["c"], "priority": 3}}})

    assert store.get(("package", "core")) == {"tags": ["c"], "priority": 3}


def test_merge_at_creates_the_target_mapping():
    store = ConfigStore()
    store.merge_at(("namespace", "app", "depends"), {"core": {"priority": 0}})

    assert store.get(("namespace", "app", "depends", "core", "priority")) == 0


def test_unset_removes_values_and_ignores_missing_paths(store):
    store.unset(("preference", "app.mail.Mailer", "singleton"))
    store.unset(("preference", "nothing", "here"))

    assert store.get(("preference", "app.mail.Mailer")) == {"class": "app.smtp.SmtpMailer"}


def test_views_share_data_with_the_parent_tree(store):
    view = store.from_path(("preference", "app.mail.Mailer"))
    view.set("singleton", False)

    assert store.get(("preference", "app.mail.Mailer", "singleton")) is False


def test_from_path_creates_missing_mapping_on_request(store):
    view = store.from_path(("preference", "app.Clock"), create=True)
    view.set("class", "app.clock.Clock")

    assert store.get(("preference", "app.Clock", "class")) == "app.clock.Clock"


def test_from_path_rejects_missing_and_scalar_paths(store):
    with pytest.raises(KeyError):
        store.from_path(("preference", "missing"))
    with pytest.raises(KeyError):
        store.from_path(("preference", "app.mail.Mailer", "class"))


def test_copies_are_independent(store):
    copy = store.copy()
    copy.set(("package", "core", "tags"), [])
    exported = store.as_dict()
    exported["package"]["core"]["tags"].append("z")

    assert store.get(("package", "core", "tags")) == ["a", "b"]


def test_store_copies_its_input():
    data = {"preference": {"app.Clock": {"class": "app.clock.Clock"}}}
    store = ConfigStore(data)
    store.set(("preference", "app.Clock", "singleton"), True)

    assert "singleton" not in data["preference"]["app.Clock"]


def test_merged_leaves_are_kept_by_reference():
    class Marker:
        pass

    target = {}
    deep_merge(target, {"preference": {"x": {"class": Marker}}})

    assert target["preference"]["x"]["class"] is Marker
