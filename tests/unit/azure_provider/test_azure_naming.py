"""
Unit tests for Azure resource naming.
"""

import pytest

from cloudship.core.resources import ResourceKind
from cloudship.providers.azure.naming import AzureNaming


class TestAzureNaming:

    def setup_method(self):
        self.naming = AzureNaming("orders-api", "sub-123")

    def test_default_names(self):
        assert self.naming.resource_group() == "orders-api-rg"
        assert self.naming.identity() == "orders-api-identity"
        assert self.naming.workspace() == "orders-api-logs"
        assert self.naming.environment() == "orders-api-env"
        assert self.naming.container_app() == "orders-api"

    def test_resource_group_override(self):
        naming = AzureNaming("orders-api", "sub-123", {"resourceGroup": "platform-rg"})

        assert naming.resource_group() == "platform-rg"
        assert "/resourceGroups/platform-rg/" in naming.registry_id()


class TestRegistryName:

    def test_hyphens_are_removed(self):
        assert AzureNaming("orders-api", "sub").registry() == "ordersapiacr"

    def test_short_names_are_padded(self):
        name = AzureNaming("ab", "sub", {"registryName": "ab"}).registry()

        assert len(name) >= 5
        assert name.startswith("ab")

    def test_long_names_are_truncated(self):
        name = AzureNaming("a" * 60, "sub").registry()

        assert len(name) == 50

    def test_override_is_sanitized(self):
        assert AzureNaming("orders-api", "sub", {"registryName": "Shared-Registry"}).registry() == "sharedregistry"


class TestRevisionSuffix:

    def setup_method(self):
        self.naming = AzureNaming("orders-api", "sub")

    def test_git_tag_becomes_suffix(self):
        assert self.naming.revision_suffix("abc1234-1700000000") == "abc1234-1700000000"

    def test_suffix_must_start_with_letter(self):
        assert self.naming.revision_suffix("1234abc-1700000000") == "v1234abc-1700000000"

    def test_double_hyphens_are_collapsed(self):
        assert "--" not in self.naming.revision_suffix("build--1700000000")

    def test_suffix_is_bounded(self):
        assert len(self.naming.revision_suffix("a" * 80)) <= 40


class TestRoleAssignment:

    def test_assignment_name_is_stable_across_runs(self):
        first = AzureNaming("orders-api", "sub").role_assignment()
        second = AzureNaming("orders-api", "sub").role_assignment()

        assert first == second

    def test_assignment_name_differs_per_service(self):
        assert AzureNaming("orders-api", "sub").role_assignment() != AzureNaming("billing", "sub").role_assignment()


@pytest.mark.parametrize("kind,expected", [
    (ResourceKind.RESOURCE_GROUP, "orders-api-rg"),
    (ResourceKind.REGISTRY, "ordersapiacr"),
    (ResourceKind.IDENTITY, "orders-api-identity"),
    (ResourceKind.LOG_SINK, "orders-api-logs"),
    (ResourceKind.CLUSTER, "orders-api-env"),
    (ResourceKind.SERVICE, "orders-api"),
])
def test_for_kind(kind, expected):
    assert AzureNaming("orders-api", "sub").for_kind(kind) == expected
