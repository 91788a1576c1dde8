import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from cloudship.core.context import DeploymentSpec
from cloudship.core.log_stream import LogEntry
from cloudship.core.resources import NotFound, ResourceDescriptor, ResourceKind
from cloudship.core.sequencer import ProvisioningStep


@pytest.fixture(scope="function", autouse=True)
def mock_env_vars():
    """Set mock environment variables to prevent accidental cloud calls."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def mock_sleep(monkeypatch):
    """Skip time.sleep calls to speed up tests."""
    monkeypatch.setattr("time.sleep", lambda x: None)


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_spec(tmp_path):
    """Build a DeploymentSpec with test defaults; keyword args override."""
    def _make(**overrides) -> DeploymentSpec:
        values = dict(
            backend="fake",
            service_name="orders-api",
            region="us-east-1",
            dockerfile_path=tmp_path / "Dockerfile",
            build_context=tmp_path,
            config_path=tmp_path / "deploy.yaml",
        )
        values.update(overrides)
        return DeploymentSpec(**values)
    return _make


# ==========================================
# In-memory backend
# ==========================================

# Setup order used by the sequencer and rollout tests
FAKE_STEPS = (
    ProvisioningStep(ResourceKind.NETWORK),
    ProvisioningStep(ResourceKind.IDENTITY),
    ProvisioningStep(ResourceKind.CLUSTER, depends_on=(ResourceKind.IDENTITY,)),
    ProvisioningStep(ResourceKind.LOAD_BALANCER, depends_on=(ResourceKind.NETWORK,)),
    ProvisioningStep(ResourceKind.LOG_SINK),
)


class FakeBackend:
    """
    In-memory CloudProvider.

    Resources live in `existing`. Failures are injected per kind through
    the fail_* maps, and every adapter call is recorded in `calls`.
    """

    name = "fake"
    log_poll_interval = 2
    stability_max_iterations = None

    def __init__(self, steps=FAKE_STEPS):
        self.steps = steps
        self.existing = {}
        self.calls = []
        self.fail_lookup = {}
        self.fail_create = {}
        self.fail_remove = {}
        self.update_errors = []
        self.stable = True
        self.log_batches = []

    def resource_name(self, kind: ResourceKind) -> str:
        return f"orders-api-{kind.value.replace('_', '-')}"

    def lookup(self, kind, inputs):
        self.calls.append(("lookup", kind))
        if kind in self.fail_lookup:
            raise self.fail_lookup[kind]
        return self.existing.get(kind) or NotFound(kind, self.resource_name(kind))

    def ensure(self, kind, inputs):
        found = self.lookup(kind, inputs)
        if isinstance(found, ResourceDescriptor):
            return found
        self.calls.append(("create", kind))
        if kind in self.fail_create:
            raise self.fail_create[kind]
        created = ResourceDescriptor(
            kind,
            self.resource_name(kind),
            f"fake://{kind.value}",
            {"inputs": sorted(dependency.value for dependency in inputs)}
        )
        self.existing[kind] = created
        return created

    def remove(self, descriptor):
        self.calls.append(("remove", descriptor.kind))
        if descriptor.kind in self.fail_remove:
            raise self.fail_remove[descriptor.kind]
        self.existing.pop(descriptor.kind, None)

    def created(self):
        return [kind for op, kind in self.calls if op == "create"]

    def removed(self):
        return [kind for op, kind in self.calls if op == "remove"]

    # RolloutTarget

    def publish(self, tag, resources):
        self.calls.append(("publish", tag))
        return f"registry.example/orders-api:{tag}"

    def probe_image(self, image_uri, resources):
        return True

    def register_revision(self, image_uri, resources):
        self.calls.append(("register", image_uri))
        return ResourceDescriptor(ResourceKind.REVISION, "orders-api:1", "fake://revision/1", {"image": image_uri})

    def update_service(self, revision, resources):
        self.calls.append(("update", revision.name))
        if self.update_errors:
            raise self.update_errors.pop(0)
        service = ResourceDescriptor(ResourceKind.SERVICE, "orders-api", "fake://service")
        self.existing[ResourceKind.SERVICE] = service
        return service

    def is_service_stable(self, service):
        return self.stable

    def service_endpoint(self, service, resources):
        return "https://orders-api.example"

    def manual_check_hint(self):
        return ["Fake Service: orders-api"]

    # LogSource

    def fetch_logs(self, since):
        if not self.log_batches:
            return []
        return self.log_batches.pop(0)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def provisioned_backend(fake_backend):
    """FakeBackend with every setup resource already present."""
    for step in fake_backend.steps:
        fake_backend.existing[step.kind] = ResourceDescriptor(
            step.kind, fake_backend.resource_name(step.kind), f"fake://{step.kind.value}"
        )
    return fake_backend


@pytest.fixture
def log_entry():
    """Entries a minute old, inside the default log lookback window."""
    start = datetime.now(timezone.utc) - timedelta(minutes=1)

    def _make(second: int, message: str) -> LogEntry:
        return LogEntry(start + timedelta(seconds=second), message)
    return _make


@pytest.fixture
def config_dir(tmp_path) -> Path:
    (tmp_path / "Dockerfile").write_text("FROM scratch\n")
    return tmp_path
