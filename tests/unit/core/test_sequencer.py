"""
Unit tests for the provisioning sequencer.

Uses the in-memory FakeBackend from conftest with the setup order
[Network, Identity, Cluster, LoadBalancer, LogSink].
"""

import pytest

from cloudship.core.exceptions import (
    ConfigurationError,
    ProvisioningError,
    ResourceRemovalError,
    TransientError,
)
from cloudship.core.resources import NotFound, ResourceDescriptor, ResourceKind
from cloudship.core.sequencer import ProvisioningSequencer, ProvisioningStep, resolve_order

SETUP_ORDER = [
    ResourceKind.NETWORK,
    ResourceKind.IDENTITY,
    ResourceKind.CLUSTER,
    ResourceKind.LOAD_BALANCER,
    ResourceKind.LOG_SINK,
]


class TestResolveOrder:

    def test_ordered_declaration_is_unchanged(self, fake_backend):
        assert [step.kind for step in resolve_order(fake_backend.steps)] == SETUP_ORDER

    def test_dependencies_come_first(self):
        steps = [
            ProvisioningStep(ResourceKind.CLUSTER, depends_on=(ResourceKind.IDENTITY,)),
            ProvisioningStep(ResourceKind.IDENTITY),
            ProvisioningStep(ResourceKind.REGISTRY),
        ]

        order = [step.kind for step in resolve_order(steps)]

        assert order == [ResourceKind.IDENTITY, ResourceKind.CLUSTER, ResourceKind.REGISTRY]

    def test_cycle_is_rejected(self):
        steps = [
            ProvisioningStep(ResourceKind.CLUSTER, depends_on=(ResourceKind.IDENTITY,)),
            ProvisioningStep(ResourceKind.IDENTITY, depends_on=(ResourceKind.CLUSTER,)),
        ]

        with pytest.raises(ConfigurationError, match="cycle"):
            resolve_order(steps)

    def test_unknown_dependency_is_rejected(self):
        steps = [ProvisioningStep(ResourceKind.CLUSTER, depends_on=(ResourceKind.NETWORK,))]

        with pytest.raises(ConfigurationError, match="undeclared"):
            resolve_order(steps)

    def test_duplicate_kind_is_rejected(self):
        steps = [ProvisioningStep(ResourceKind.NETWORK), ProvisioningStep(ResourceKind.NETWORK)]

        with pytest.raises(ConfigurationError, match="Duplicate"):
            resolve_order(steps)


class TestSetup:

    def test_creates_every_step_in_order(self, fake_backend):
        resources = ProvisioningSequencer(fake_backend, fake_backend.steps).setup()

        assert fake_backend.created() == SETUP_ORDER
        assert list(resources) == SETUP_ORDER

    def test_dependency_descriptors_are_threaded_through(self, fake_backend):
        resources = ProvisioningSequencer(fake_backend, fake_backend.steps).setup()

        assert resources[ResourceKind.CLUSTER].get("inputs") == ["identity"]
        assert resources[ResourceKind.LOAD_BALANCER].get("inputs") == ["network"]

    def test_setup_twice_creates_nothing_new(self, fake_backend):
        sequencer = ProvisioningSequencer(fake_backend, fake_backend.steps)

        first = sequencer.setup()
        snapshot = dict(fake_backend.existing)
        second = sequencer.setup()

        assert fake_backend.created() == SETUP_ORDER
        assert fake_backend.existing == snapshot
        assert first == second

    def test_first_failure_aborts_with_step_and_name(self, fake_backend):
        fake_backend.fail_create[ResourceKind.CLUSTER] = RuntimeError("quota exceeded")

        with pytest.raises(ProvisioningError) as exc_info:
            ProvisioningSequencer(fake_backend, fake_backend.steps).setup()

        assert exc_info.value.step == "Cluster"
        assert exc_info.value.resource_name == "orders-api-cluster"
        assert "quota exceeded" in str(exc_info.value)
        assert ResourceKind.LOAD_BALANCER not in fake_backend.created()

    def test_transient_failure_suggests_rerun(self, fake_backend):
        fake_backend.fail_create[ResourceKind.NETWORK] = TransientError("throttled")

        with pytest.raises(ProvisioningError) as exc_info:
            ProvisioningSequencer(fake_backend, fake_backend.steps).setup()

        assert "safe to re-run" in str(exc_info.value)

    def test_deploy_owned_steps_are_skipped(self, fake_backend):
        fake_backend.steps = fake_backend.steps + (
            ProvisioningStep(ResourceKind.SERVICE, depends_on=(ResourceKind.CLUSTER,), provisioned_by_setup=False),
        )

        resources = ProvisioningSequencer(fake_backend, fake_backend.steps).setup()

        assert ResourceKind.SERVICE not in resources
        assert ResourceKind.SERVICE not in fake_backend.created()


class TestDiscover:

    def test_never_creates(self, fake_backend):
        found = ProvisioningSequencer(fake_backend, fake_backend.steps).discover()

        assert fake_backend.created() == []
        assert all(isinstance(result, NotFound) for result in found.values())


class TestTeardown:

    def test_removes_in_exact_reverse_order(self, provisioned_backend):
        report = ProvisioningSequencer(provisioned_backend, provisioned_backend.steps).teardown()

        assert provisioned_backend.removed() == [
            ResourceKind.LOG_SINK,
            ResourceKind.LOAD_BALANCER,
            ResourceKind.CLUSTER,
            ResourceKind.IDENTITY,
            ResourceKind.NETWORK,
        ]
        assert report.succeeded

    def test_partial_failure_continues_and_reports(self, provisioned_backend):
        provisioned_backend.fail_remove[ResourceKind.CLUSTER] = ResourceRemovalError(
            "Cluster", "orders-api-cluster", cause=RuntimeError("tasks still running")
        )

        report = ProvisioningSequencer(provisioned_backend, provisioned_backend.steps).teardown()

        assert ResourceKind.IDENTITY in provisioned_backend.removed()
        assert ResourceKind.NETWORK in provisioned_backend.removed()
        assert not report.succeeded
        assert [failure.kind for failure in report.failures] == [ResourceKind.CLUSTER]
        assert "tasks still running" in report.summary_lines()[0]

    def test_missing_resources_are_skipped(self, fake_backend):
        fake_backend.existing[ResourceKind.NETWORK] = ResourceDescriptor(
            ResourceKind.NETWORK, "orders-api-network", "fake://network"
        )

        report = ProvisioningSequencer(fake_backend, fake_backend.steps).teardown()

        assert fake_backend.removed() == [ResourceKind.NETWORK]
        assert len(report.skipped) == 4
        assert report.succeeded

    def test_lookup_failure_is_reported_not_raised(self, provisioned_backend):
        provisioned_backend.fail_lookup[ResourceKind.IDENTITY] = RuntimeError("access denied")

        report = ProvisioningSequencer(provisioned_backend, provisioned_backend.steps).teardown()

        assert ResourceKind.IDENTITY not in provisioned_backend.removed()
        assert ResourceKind.NETWORK in provisioned_backend.removed()
        assert "lookup failed" in report.failures[0].message
