"""
GCP rollout hooks: Artifact Registry login and probe, revision template,
Cloud Run service create/update.
"""

import logging
from typing import TYPE_CHECKING, Optional

from google.api_core.exceptions import NotFound as GoogleNotFound
from google.auth.transport.requests import Request
from google.cloud import run_v2
from google.iam.v1 import policy_pb2
from google.protobuf import duration_pb2

from ... import constants as CONSTANTS
from ...core.protocols import Inputs
from ...core.resources import ResourceDescriptor, ResourceKind
from ...runner import docker_login
from .resources import service_descriptor

if TYPE_CHECKING:
    from .provider import GCPCloudRunProvider

logger = logging.getLogger(__name__)

ALL_USERS = "allUsers"


def registry_login(provider: 'GCPCloudRunProvider') -> None:
    credentials = provider.credentials
    credentials.refresh(Request())
    docker_login(provider.naming.registry_host(), "oauth2accesstoken", credentials.token)


def probe_image(provider: 'GCPCloudRunProvider', image_uri: str, resources: Inputs) -> bool:
    tag = image_uri.rsplit(":", 1)[-1]
    try:
        found = provider.clients["artifactregistry"].get_tag(name=provider.naming.image_tag_path(tag))
    except GoogleNotFound:
        return False
    logger.info(f"[GCP] Image version: {found.version}")
    return True


def build_revision_template(provider: 'GCPCloudRunProvider', image_uri: str) -> run_v2.RevisionTemplate:
    spec = provider.spec
    tag = image_uri.rsplit(":", 1)[-1]

    container = run_v2.Container(
        image=image_uri,
        ports=[run_v2.ContainerPort(name="http1", container_port=spec.container_port)],
        resources=run_v2.ResourceRequirements(limits={
            "cpu": spec.cpu or CONSTANTS.GCP_DEFAULT_CPU,
            "memory": spec.memory or CONSTANTS.GCP_DEFAULT_MEMORY,
        }),
        env=[run_v2.EnvVar(name=key, value=value) for key, value in spec.environment.items()],
        startup_probe=run_v2.Probe(
            http_get=run_v2.HTTPGetAction(path=spec.health_check_path),
            period_seconds=spec.health_check_interval_seconds,
        ),
    )

    return run_v2.RevisionTemplate(
        revision=provider.naming.revision(tag),
        containers=[container],
        scaling=run_v2.RevisionScaling(
            min_instance_count=int(spec.option("minInstances", 0)),
            max_instance_count=int(spec.option("maxInstances", max(spec.desired_count, 1))),
        ),
        timeout=duration_pb2.Duration(
            seconds=int(spec.option("timeoutSeconds", CONSTANTS.GCP_DEFAULT_TIMEOUT_SECONDS))
        ),
    )


def register_revision(provider: 'GCPCloudRunProvider', image_uri: str, resources: Inputs) -> ResourceDescriptor:
    """
    Build the revision template for this image.

    Cloud Run revisions are immutable and only come into existence when the
    service is updated with the template, so nothing is sent here.
    """
    template = build_revision_template(provider, image_uri)
    return ResourceDescriptor(
        ResourceKind.REVISION,
        template.revision,
        f"{provider.naming.service_path()}/revisions/{template.revision}",
        {"template": template, "image": image_uri}
    )


def _latest_traffic():
    return [run_v2.TrafficTarget(
        type_=run_v2.TrafficTargetAllocationType.TRAFFIC_TARGET_ALLOCATION_TYPE_LATEST,
        percent=100,
    )]


def _allow_unauthenticated(provider: 'GCPCloudRunProvider', service_path: str) -> None:
    run = provider.clients["run"]
    policy = run.get_iam_policy(request={"resource": service_path})
    for binding in policy.bindings:
        if binding.role == CONSTANTS.GCP_INVOKER_ROLE and ALL_USERS in binding.members:
            return
    policy.bindings.append(policy_pb2.Binding(role=CONSTANTS.GCP_INVOKER_ROLE, members=[ALL_USERS]))
    run.set_iam_policy(request={"resource": service_path, "policy": policy})
    logger.info(f"[GCP] ✓ Granted {CONSTANTS.GCP_INVOKER_ROLE} to {ALL_USERS}")


def update_service(provider: 'GCPCloudRunProvider', revision: ResourceDescriptor, resources: Inputs) -> ResourceDescriptor:
    run = provider.clients["run"]
    naming = provider.naming
    template = revision.get("template")

    try:
        existing = run.get_service(name=naming.service_path())
    except GoogleNotFound:
        existing = None

    if existing is not None:
        logger.info(f"[GCP] Service exists, updating {naming.service()}...")
        existing.template = template
        existing.traffic = _latest_traffic()
        service = run.update_service(service=existing).result()
    else:
        logger.info(f"[GCP] Service doesn't exist, creating {naming.service()}...")
        service = run.create_service(
            parent=naming.location_path(),
            service_id=naming.service(),
            service=run_v2.Service(
                template=template,
                traffic=_latest_traffic(),
                ingress=run_v2.IngressTraffic.INGRESS_TRAFFIC_ALL,
            ),
        ).result()

    if provider.spec.option("allowUnauthenticated", False):
        _allow_unauthenticated(provider, service.name)

    return service_descriptor(service)


def is_service_stable(provider: 'GCPCloudRunProvider', service: ResourceDescriptor) -> bool:
    current = provider.clients["run"].get_service(name=service.identifier)
    ready = current.latest_ready_revision
    created = current.latest_created_revision
    succeeded = current.terminal_condition.state == run_v2.Condition.State.CONDITION_SUCCEEDED
    logger.debug(f"[GCP] {service.name}: ready={ready.rsplit('/', 1)[-1]} created={created.rsplit('/', 1)[-1]}")
    return bool(created) and ready == created and succeeded


def service_endpoint(provider: 'GCPCloudRunProvider', service: ResourceDescriptor) -> Optional[str]:
    uri = service.get("uri")
    if uri:
        return uri
    return provider.clients["run"].get_service(name=service.identifier).uri or None
