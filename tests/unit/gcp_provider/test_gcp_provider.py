"""
GCP Cloud Run binding tests.

SDK clients are MagicMocks; request/response objects are the real
run_v2 / Artifact Registry / IAM protobuf types.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import run_v2
from google.iam.v1 import policy_pb2
from googleapiclient.errors import HttpError

from cloudship.core.exceptions import (
    ConfigurationError,
    DeploymentError,
    ImagePropagationError,
    ResourceExistsError,
    ResourceNotFoundError,
    TransientError,
)
from cloudship.core.resources import NotFound, ResourceDescriptor, ResourceKind
from cloudship.providers.gcp import logs
from cloudship.providers.gcp.naming import GCPNaming
from cloudship.providers.gcp.provider import GCPCloudRunProvider

SERVICE_PATH = "projects/my-project/locations/europe-west1/services/orders-api"


@pytest.fixture
def mock_provider(make_spec):
    """GCPCloudRunProvider with MagicMock clients."""
    provider = GCPCloudRunProvider()
    provider._spec = make_spec(
        backend="gcp-cloudrun",
        region="europe-west1",
        environment={"LOG_LEVEL": "info"},
        options={"projectId": "my-project"},
    )
    provider._naming = GCPNaming("orders-api", "my-project", "europe-west1")
    provider._project_id = "my-project"
    provider._credentials = MagicMock(token="ya29.token")
    provider._initialized = True
    provider._clients = {
        "run": MagicMock(),
        "artifactregistry": MagicMock(),
        "serviceusage": MagicMock(),
        "logging": MagicMock(),
    }
    return provider


def _batch_get(*states):
    services = [
        {"config": {"name": name}, "state": state}
        for name, state in zip(["run.googleapis.com", "artifactregistry.googleapis.com"], states)
    ]
    return {"services": services}


# ==========================================
# Naming
# ==========================================

class TestGCPNaming:

    def setup_method(self):
        self.naming = GCPNaming("orders-api", "my-project", "europe-west1")

    def test_paths(self):
        assert self.naming.repository_path() == "projects/my-project/locations/europe-west1/repositories/orders-api"
        assert self.naming.service_path() == SERVICE_PATH

    def test_image_uri(self):
        assert self.naming.image("abc-1") == "europe-west1-docker.pkg.dev/my-project/orders-api/orders-api:abc-1"

    def test_repository_override(self):
        naming = GCPNaming("orders-api", "my-project", "europe-west1", {"artifactRegistryRepository": "shared"})

        assert naming.image("t").startswith("europe-west1-docker.pkg.dev/my-project/shared/")

    def test_revision_is_lowercase_and_prefixed(self):
        assert self.naming.revision("ABC1234_1700000000") == "orders-api-abc1234-1700000000"
        assert len(self.naming.revision("x" * 80)) <= 63

    def test_long_service_name_keeps_revisions_distinct(self):
        naming = GCPNaming("a" * 40 + "-service", "my-project", "europe-west1")

        first = naming.revision("1a2b3c4-1760000000")
        second = naming.revision("1a2b3c4-1760000900")

        assert first != second
        assert first.startswith("a" * 40 + "-service-")
        assert len(first) <= 63
        assert naming.revision("1a2b3c4-1760000000") == first


# ==========================================
# Resource adapter
# ==========================================

class TestServiceApis:

    def test_enabled_apis_are_found(self, mock_provider):
        services = mock_provider.clients["serviceusage"].services.return_value
        services.batchGet.return_value.execute.return_value = _batch_get("ENABLED", "ENABLED")

        found = mock_provider.lookup(ResourceKind.SERVICE_APIS, {})

        assert found.identifier == "projects/my-project"

    def test_disabled_api_is_enabled(self, mock_provider):
        services = mock_provider.clients["serviceusage"].services.return_value
        services.batchGet.return_value.execute.side_effect = [
            _batch_get("ENABLED", "DISABLED"),
            _batch_get("ENABLED", "ENABLED"),
        ]
        services.batchEnable.return_value.execute.return_value = {"name": "operations/1", "done": True}

        mock_provider.ensure(ResourceKind.SERVICE_APIS, {})

        services.batchEnable.assert_called_once_with(
            parent="projects/my-project",
            body={"serviceIds": ["run.googleapis.com", "artifactregistry.googleapis.com"]}
        )

    def test_remove_retains_apis(self, mock_provider):
        descriptor = ResourceDescriptor(ResourceKind.SERVICE_APIS, "apis", "projects/my-project")

        mock_provider.remove(descriptor)

        mock_provider.clients["serviceusage"].services.return_value.batchEnable.assert_not_called()


class TestRegistry:

    def test_missing_repository_is_created(self, mock_provider):
        registry = mock_provider.clients["artifactregistry"]
        registry.get_repository.side_effect = google_exceptions.NotFound("repository not found")
        repository = MagicMock()
        repository.name = "projects/my-project/locations/europe-west1/repositories/orders-api"
        registry.create_repository.return_value.result.return_value = repository

        created = mock_provider.ensure(ResourceKind.REGISTRY, {})

        assert created.identifier == repository.name
        assert created.get("host") == "europe-west1-docker.pkg.dev"
        kwargs = registry.create_repository.call_args.kwargs
        assert kwargs["repository_id"] == "orders-api"
        assert kwargs["parent"] == "projects/my-project/locations/europe-west1"

    def test_existing_repository_is_reused(self, mock_provider):
        registry = mock_provider.clients["artifactregistry"]
        registry.get_repository.return_value = MagicMock()

        mock_provider.ensure(ResourceKind.REGISTRY, {})

        registry.create_repository.assert_not_called()

    def test_create_race_looks_up_again(self, mock_provider):
        registry = mock_provider.clients["artifactregistry"]
        registry.get_repository.side_effect = [google_exceptions.NotFound("missing"), MagicMock()]
        registry.create_repository.side_effect = google_exceptions.AlreadyExists("exists")

        found = mock_provider.ensure(ResourceKind.REGISTRY, {})

        assert found.kind == ResourceKind.REGISTRY

    def test_lookup_permission_denied_propagates(self, mock_provider):
        registry = mock_provider.clients["artifactregistry"]
        registry.get_repository.side_effect = google_exceptions.PermissionDenied("denied")

        with pytest.raises(ConfigurationError):
            mock_provider.lookup(ResourceKind.REGISTRY, {})


class TestServiceTeardown:

    def test_missing_service_lookup(self, mock_provider):
        mock_provider.clients["run"].get_service.side_effect = google_exceptions.NotFound("no service")

        assert mock_provider.lookup(ResourceKind.SERVICE, {}) == NotFound(ResourceKind.SERVICE, "orders-api")

    def test_remove_missing_service_is_success(self, mock_provider):
        mock_provider.clients["run"].delete_service.side_effect = google_exceptions.NotFound("no service")

        mock_provider.remove(ResourceDescriptor(ResourceKind.SERVICE, "orders-api", SERVICE_PATH))


# ==========================================
# Error translation
# ==========================================

class TestTranslateError:

    def setup_method(self):
        self.provider = GCPCloudRunProvider()

    @pytest.mark.parametrize("error,expected", [
        (google_exceptions.NotFound("gone"), ResourceNotFoundError),
        (google_exceptions.Conflict("exists"), ResourceExistsError),
        (google_exceptions.AlreadyExists("exists"), ResourceExistsError),
        (google_exceptions.ServiceUnavailable("try later"), TransientError),
        (google_exceptions.TooManyRequests("quota"), TransientError),
        (google_exceptions.PermissionDenied("denied"), ConfigurationError),
        (google_exceptions.InvalidArgument("bad cpu value"), DeploymentError),
    ])
    def test_api_core_errors(self, error, expected):
        assert type(self.provider.translate_error(error)) is expected

    def test_missing_image_is_image_propagation(self):
        error = google_exceptions.FailedPrecondition(
            "Image 'europe-west1-docker.pkg.dev/my-project/orders-api/orders-api:abc' not found."
        )

        assert isinstance(self.provider.translate_error(error), ImagePropagationError)

    @pytest.mark.parametrize("status,expected", [
        (404, ResourceNotFoundError),
        (409, ResourceExistsError),
        (429, TransientError),
        (503, TransientError),
        (403, ConfigurationError),
        (400, DeploymentError),
    ])
    def test_discovery_http_errors(self, status, expected):
        error = HttpError(httplib2.Response({"status": status}), b"")

        assert type(self.provider.translate_error(error)) is expected


# ==========================================
# Rollout hooks
# ==========================================

class TestRevisionTemplate:

    def test_template_carries_container_settings(self, mock_provider):
        revision = mock_provider.register_revision(
            "europe-west1-docker.pkg.dev/my-project/orders-api/orders-api:abc-1", {}
        )
        template = revision.get("template")
        container = template.containers[0]

        assert revision.name == "orders-api-abc-1"
        assert revision.identifier == f"{SERVICE_PATH}/revisions/orders-api-abc-1"
        assert container.image.endswith(":abc-1")
        assert container.ports[0].container_port == 8080
        assert container.resources.limits["memory"] == "512Mi"
        assert [(env.name, env.value) for env in container.env] == [("LOG_LEVEL", "info")]
        assert container.startup_probe.http_get.path == "/health"
        assert template.scaling.min_instance_count == 0
        assert template.scaling.max_instance_count == 1

    def test_scaling_options(self, mock_provider, make_spec):
        mock_provider._spec = make_spec(
            backend="gcp-cloudrun", desired_count=3, options={"minInstances": 1, "maxInstances": 5}
        )

        template = mock_provider.register_revision("img:tag", {}).get("template")

        assert template.scaling.min_instance_count == 1
        assert template.scaling.max_instance_count == 5


class TestUpdateService:

    def _revision(self, mock_provider):
        return mock_provider.register_revision("europe-west1-docker.pkg.dev/my-project/orders-api/orders-api:abc", {})

    def test_creates_missing_service_with_latest_traffic(self, mock_provider):
        run = mock_provider.clients["run"]
        run.get_service.side_effect = google_exceptions.NotFound("no service")
        run.create_service.return_value.result.return_value = run_v2.Service(
            name=SERVICE_PATH, uri="https://orders-api-xyz.a.run.app"
        )

        service = mock_provider.update_service(self._revision(mock_provider), {})

        assert service.get("uri") == "https://orders-api-xyz.a.run.app"
        created = run.create_service.call_args.kwargs["service"]
        assert created.traffic[0].percent == 100
        assert created.ingress == run_v2.IngressTraffic.INGRESS_TRAFFIC_ALL
        run.update_service.assert_not_called()

    def test_updates_existing_service(self, mock_provider):
        run = mock_provider.clients["run"]
        run.get_service.return_value = run_v2.Service(name=SERVICE_PATH)
        run.update_service.return_value.result.return_value = run_v2.Service(name=SERVICE_PATH)

        mock_provider.update_service(self._revision(mock_provider), {})

        updated = run.update_service.call_args.kwargs["service"]
        assert updated.template.revision == "orders-api-abc"
        run.create_service.assert_not_called()

    def test_allow_unauthenticated_adds_invoker_binding(self, mock_provider, make_spec):
        mock_provider._spec = make_spec(backend="gcp-cloudrun", options={"allowUnauthenticated": True})
        run = mock_provider.clients["run"]
        run.get_service.return_value = run_v2.Service(name=SERVICE_PATH)
        run.update_service.return_value.result.return_value = run_v2.Service(name=SERVICE_PATH)
        run.get_iam_policy.return_value = policy_pb2.Policy()

        mock_provider.update_service(self._revision(mock_provider), {})

        policy = run.set_iam_policy.call_args.kwargs["request"]["policy"]
        assert policy.bindings[0].role == "roles/run.invoker"
        assert list(policy.bindings[0].members) == ["allUsers"]

    def test_image_not_found_on_update_is_retryable(self, mock_provider):
        run = mock_provider.clients["run"]
        run.get_service.return_value = run_v2.Service(name=SERVICE_PATH)
        run.update_service.side_effect = google_exceptions.FailedPrecondition("Image 'x:abc' not found")

        with pytest.raises(ImagePropagationError):
            mock_provider.update_service(self._revision(mock_provider), {})


class TestStability:

    def _service(self, ready, created, state):
        return run_v2.Service(
            name=SERVICE_PATH,
            latest_ready_revision=f"{SERVICE_PATH}/revisions/{ready}",
            latest_created_revision=f"{SERVICE_PATH}/revisions/{created}",
            terminal_condition=run_v2.Condition(state=state),
        )

    def test_stable_when_latest_revision_is_ready(self, mock_provider):
        mock_provider.clients["run"].get_service.return_value = self._service(
            "orders-api-abc", "orders-api-abc", run_v2.Condition.State.CONDITION_SUCCEEDED
        )
        service = ResourceDescriptor(ResourceKind.SERVICE, "orders-api", SERVICE_PATH)

        assert mock_provider.is_service_stable(service) is True

    def test_not_stable_while_new_revision_starts(self, mock_provider):
        mock_provider.clients["run"].get_service.return_value = self._service(
            "orders-api-old", "orders-api-abc", run_v2.Condition.State.CONDITION_RECONCILING
        )
        service = ResourceDescriptor(ResourceKind.SERVICE, "orders-api", SERVICE_PATH)

        assert mock_provider.is_service_stable(service) is False


class TestProbeAndLogin:

    def test_probe_missing_tag(self, mock_provider):
        mock_provider.clients["artifactregistry"].get_tag.side_effect = google_exceptions.NotFound("no tag")

        assert mock_provider.probe_image("host/my-project/orders-api/orders-api:abc", {}) is False
        mock_provider.clients["artifactregistry"].get_tag.assert_called_once_with(
            name="projects/my-project/locations/europe-west1/repositories/orders-api/packages/orders-api/tags/abc"
        )

    @patch("cloudship.providers.gcp.rollout.docker_login")
    def test_login_uses_access_token(self, mock_login, mock_provider):
        mock_provider.registry_login({})

        mock_provider.credentials.refresh.assert_called_once()
        mock_login.assert_called_once_with("europe-west1-docker.pkg.dev", "oauth2accesstoken", "ya29.token")


class TestLogs:

    def test_filter_scopes_to_service_and_cursor(self):
        since = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

        query = logs.build_filter("orders-api", since)

        assert 'resource.type="cloud_run_revision"' in query
        assert 'resource.labels.service_name="orders-api"' in query
        assert 'timestamp>="2024-05-01T12:00:00.000000Z"' in query

    def test_entries_are_sorted_and_json_payloads_flattened(self, mock_provider):
        since = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
        later = MagicMock(timestamp=since.replace(second=5), payload={"message": "second"}, resource=None)
        earlier = MagicMock(timestamp=since.replace(second=1), payload="first", resource=None)
        mock_provider.clients["logging"].list_entries.return_value = [later, earlier]

        entries = mock_provider.fetch_logs(since)

        assert [entry.message for entry in entries] == ["first", "second"]


class TestInitializeClients:

    @patch("cloudship.providers.gcp.clients.create_gcp_clients")
    @patch("cloudship.providers.gcp.clients.load_credentials")
    def test_project_falls_back_to_credentials(self, mock_load, mock_create, make_spec):
        mock_load.return_value = (MagicMock(), "detected-project")
        provider = GCPCloudRunProvider()

        provider.initialize_clients(make_spec(backend="gcp-cloudrun", region="europe-west1"))

        assert provider.project_id == "detected-project"
        mock_create.assert_called_once()

    @patch("cloudship.providers.gcp.clients.load_credentials")
    def test_missing_project_is_configuration_error(self, mock_load, make_spec):
        mock_load.return_value = (MagicMock(), None)

        with pytest.raises(ConfigurationError, match="projectId"):
            GCPCloudRunProvider().initialize_clients(make_spec(backend="gcp-cloudrun"))

    @patch("cloudship.providers.gcp.clients.load_credentials")
    def test_missing_credentials_is_configuration_error(self, mock_load, make_spec):
        from google.auth.exceptions import DefaultCredentialsError
        mock_load.side_effect = DefaultCredentialsError("no ADC")

        with pytest.raises(ConfigurationError, match="credentials"):
            GCPCloudRunProvider().initialize_clients(make_spec(backend="gcp-cloudrun"))
