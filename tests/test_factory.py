import logging

import pytest

from prefab.container import ServiceContainer
from prefab.errors import (
    CircularInstantiationError,
    ClassNotFoundError,
    ConfigurationError,
    DependencyError,
    NotInstantiableError,
    UnresolvableParameterError,
)
from prefab.factory import ServiceFactory
from prefab.store import ConfigStore
from sample_services import (
    ArchivingMailer,
    AuditLog,
    Bag,
    Clock,
    Counted,
    Endpoint,
    Greeting,
    Mailer,
    QualifiedMailer,
    Registry,
    SmtpTransport,
    Transport,
    UnmarkedHook,
)

TRANSPORT = "sample_services.Transport"
MAILER = "sample_services.Mailer"


@pytest.fixture
def container() -> ServiceContainer:
    return ServiceContainer()


@pytest.fixture
def factory(container) -> ServiceFactory:
    return ServiceFactory(
        {
            "preference": {
                TRANSPORT: {
                    "class": "sample_services.SmtpTransport",
                    "parameters": {"host": {"value": "mx.example.com"}},
                },
            }
        },
        container,
    )


def test_builds_typed_dependencies_recursively(factory):
    mailer = factory.create(MAILER)

    assert isinstance(mailer, Mailer)
    assert isinstance(mailer.transport, SmtpTransport)
    assert mailer.transport.host == "mx.example.com"
    assert mailer.transport.port == 25


def test_classes_can_be_used_as_service_keys(factory):
    mailer = factory.create(Mailer)

    assert mailer.send("hi") == "mx.example.com:25 <- hi"


def test_injector_methods_receive_resolved_dependencies(factory):
    mailer = factory.create(MAILER)
    mailer.send("hello")

    assert isinstance(mailer.audit_log, AuditLog)
    assert mailer.audit_log.entries == ["hello"]


def test_inherited_injectors_run_before_subclass_injectors(factory):
    mailer = factory.create(ArchivingMailer)

    assert isinstance(mailer.audit_log, AuditLog)
    assert isinstance(mailer.clock, Clock)


def test_classes_without_constructor_are_built_without_arguments(factory):
    assert isinstance(factory.create("sample_services.Clock"), Clock)


def test_class_objects_are_accepted_in_configuration():
    factory = ServiceFactory({"preference": {"clock": {"class": Clock}}})

    assert isinstance(factory.create("clock"), Clock)


def test_explicit_arguments_replace_configured_parameters(factory):
    transport = factory.create(TRANSPORT, "relay.local", 2525)

    assert (transport.host, transport.port) == ("relay.local", 2525)


def test_configured_values_override_defaults():
    factory = ServiceFactory(
        {
            "preference": {
                "endpoint": {
                    "class": Endpoint,
                    "parameters": {"url": {"value": "http://localhost"}, "timeout": 5.0},
                }
            }
        }
    )

    endpoint = factory.create("endpoint")

    assert (endpoint.url, endpoint.timeout) == ("http://localhost", 5.0)


def test_annotated_qualifier_names_the_dependency(factory, container):
    transport = SmtpTransport("qualified.local")
    container.attach("mail.transport", transport)

    assert factory.create(QualifiedMailer).transport is transport


def test_container_instances_are_reused(factory, container):
    transport = SmtpTransport("shared.local")
    container.attach(TRANSPORT, transport)

    assert factory.create(MAILER).transport is transport


def test_singletons_are_attached_to_the_container(container):
    Counted.instances = 0
    factory = ServiceFactory(
        {"preference": {"counted": {"class": "sample_services.Counted", "singleton": True}}},
        container,
    )

    first = factory.create("counted")

    assert container.get("counted") is first
    assert factory.get("counted") is first
    assert Counted.instances == 1


def test_get_creates_missing_services(factory):
    assert isinstance(factory.get("sample_services.Clock"), Clock)


def test_singleton_without_container_logs_a_warning(caplog):
    factory = ServiceFactory({"preference": {"clock": {"class": Clock, "singleton": True}}})

    with caplog.at_level(logging.WARNING, logger="prefab.factory"):
        factory.create("clock")

    assert "no container is attached" in caplog.text


def test_circular_instantiation_fails_and_factory_stays_usable(factory):
    with pytest.raises(
        CircularInstantiationError,
        match="Circular dependency detected for service 'sample_services.SelfDependent'",
    ):
        factory.create("sample_services.SelfDependent")

    assert isinstance(factory.create("sample_services.Clock"), Clock)


def test_create_leaves_the_factory_configuration_untouched(factory):
    before = factory.config.as_dict()

    factory.create(MAILER)

    assert factory.config.as_dict() == before


def test_failed_create_leaves_the_factory_configuration_untouched():
    factory = ServiceFactory(
        {
            "namespace": {"sample_services": {"depends": {"core": {}}}},
            "package": {"core": {}},
            "preference": {"sample_services.Untyped": {"depends": {"missing": {}}}},
        }
    )
    before = factory.config.as_dict()

    with pytest.raises(DependencyError):
        factory.create("sample_services.Untyped")

    assert factory.config.as_dict() == before


def test_configurable_instances_receive_their_config():
    factory = ServiceFactory(
        {
            "preference": {
                "greeting": {
                    "class": Greeting,
                    "config": {"audience": {"name": "world"}},
                }
            }
        }
    )

    greeting = factory.create("greeting")

    assert isinstance(greeting.config, ConfigStore)
    assert greeting.config.get(("audience", "name")) == "world"


def test_config_node_must_be_a_mapping():
    factory = ServiceFactory({"preference": {"greeting": {"class": Greeting, "config": 3}}})

    with pytest.raises(ConfigurationError, match="'config' of service 'greeting'"):
        factory.create("greeting")


def test_abstract_classes_are_not_instantiable():
    factory = ServiceFactory()

    with pytest.raises(NotInstantiableError, match="is not instantiable: it is abstract"):
        factory.create(Transport)


def test_protocols_are_not_instantiable():
    factory = ServiceFactory()

    with pytest.raises(NotInstantiableError, match="it is a protocol"):
        factory.create("sample_services.Notifier")


def test_non_class_targets_are_not_instantiable():
    factory = ServiceFactory({"preference": {"x": {"class": "sample_services.Mailer.send"}}})

    with pytest.raises(NotInstantiableError, match="is not a class"):
        factory.create("x")


def test_unknown_classes_are_reported():
    factory = ServiceFactory({"preference": {"x": {"class": "no_such_module.Thing"}}})

    with pytest.raises(ClassNotFoundError, match="resolved preference: 'no_such_module.Thing'"):
        factory.create("x")


def test_untyped_parameters_need_a_configured_value():
    factory = ServiceFactory()

    with pytest.raises(UnresolvableParameterError, match="parameter 'value' is not typed"):
        factory.create("sample_services.Untyped")


def test_builtin_typed_parameters_need_a_configured_value():
    factory = ServiceFactory({"preference": {TRANSPORT: {"class": SmtpTransport}}})

    with pytest.raises(UnresolvableParameterError, match="parameter 'host'"):
        factory.create(MAILER)


def test_optional_dependencies_are_not_guessed():
    factory = ServiceFactory()

    with pytest.raises(UnresolvableParameterError, match="no single named service type"):
        factory.create("sample_services.Maybe")


def test_variadic_parameters_take_configured_values():
    factory = ServiceFactory(
        {
            "preference": {
                "bag": {
                    "class": Bag,
                    "parameters": {
                        "items": {"value": [1, 2]},
                        "labels": {"value": {"colour": "red"}},
                    },
                }
            }
        }
    )

    bag = factory.create("bag")

    assert bag.items == (1, 2)
    assert bag.labels == {"colour": "red"}


def test_unconfigured_variadic_parameters_fail():
    factory = ServiceFactory({"preference": {"bag": {"class": Bag}}})

    with pytest.raises(UnresolvableParameterError, match="variadic parameter 'items'"):
        factory.create("bag")


def test_parameter_entries_need_a_value_node():
    factory = ServiceFactory(
        {"preference": {TRANSPORT: {"class": SmtpTransport, "parameters": {"host": {}}}}}
    )

    with pytest.raises(UnresolvableParameterError, match="without a 'value' node"):
        factory.create(TRANSPORT)


def test_errors_share_a_common_base(factory):
    with pytest.raises(DependencyError):
        factory.create("sample_services.SelfDependent")


def test_lazy_handles_use_the_configuration_at_capture_time(factory):
    handle = factory.lazy_create(TRANSPORT)
    factory.config.set(("preference", TRANSPORT, "parameters", "host", "value"), "late.local")

    assert handle().host == "mx.example.com"
    assert factory.create(TRANSPORT).host == "late.local"


def test_lazy_handles_build_a_new_instance_per_call(factory):
    handle = factory.lazy_create(TRANSPORT, "relay.local")

    first, second = handle(), handle()

    assert first is not second
    assert first.host == second.host == "relay.local"


def test_resolve_exposes_the_effective_configuration(factory):
    effective = factory.resolve(TRANSPORT)

    assert effective.class_ref == "sample_services.SmtpTransport"
    assert effective.parameters == {"host": {"value": "mx.example.com"}}


def test_factories_can_be_rebound(factory):
    container = ServiceContainer()
    rebound = factory.with_container(container)
    reconfigured = factory.with_config({"preference": {"clock": {"class": Clock}}})

    assert rebound.container is container
    assert rebound.config is factory.config
    assert reconfigured.container is factory.container
    assert isinstance(reconfigured.create("clock"), Clock)


def test_builtin_base_constructors_are_called_without_arguments():
    factory = ServiceFactory()

    registry = factory.create("sample_services.Registry")

    assert isinstance(registry, Registry)
    assert registry == {}


def test_only_marked_methods_are_injectors():
    factory = ServiceFactory()

    hook = factory.create(UnmarkedHook)

    assert hook.clock is None
