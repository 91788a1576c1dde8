"""
Azure rollout hooks: ACR token exchange and manifest probe, revision
template, container app create/update.
"""

import logging
from typing import TYPE_CHECKING, Optional

import requests

from ... import constants as CONSTANTS
from ...core.protocols import Inputs
from ...core.resources import ResourceDescriptor, ResourceKind
from ...runner import docker_login
from .resources import get_container_app, service_descriptor

if TYPE_CHECKING:
    from .provider import AzureContainerAppsProvider

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30
MANIFEST_MEDIA_TYPES = ", ".join([
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
])


# ==========================================
# ACR authentication
# ==========================================

def exchange_refresh_token(provider: 'AzureContainerAppsProvider', login_server: str) -> str:
    """Trade an ARM access token for an ACR refresh token."""
    arm_token = provider.credential.get_token(CONSTANTS.AZURE_MANAGEMENT_SCOPE).token
    data = {"grant_type": "access_token", "service": login_server, "access_token": arm_token}
    tenant_id = provider.spec.option("tenantId")
    if tenant_id:
        data["tenant"] = tenant_id

    response = requests.post(f"https://{login_server}/oauth2/exchange", data=data, timeout=REQUEST_TIMEOUT_SECONDS)
    response.raise_for_status()
    return response.json()["refresh_token"]


def _pull_token(login_server: str, refresh_token: str, repository: str) -> str:
    response = requests.post(
        f"https://{login_server}/oauth2/token",
        data={
            "grant_type": "refresh_token",
            "service": login_server,
            "scope": f"repository:{repository}:pull",
            "refresh_token": refresh_token,
        },
        timeout=REQUEST_TIMEOUT_SECONDS
    )
    response.raise_for_status()
    return response.json()["access_token"]


def registry_login(provider: 'AzureContainerAppsProvider', resources: Inputs) -> None:
    login_server = resources[ResourceKind.REGISTRY].get("login_server")
    docker_login(login_server, CONSTANTS.AZURE_ACR_TOKEN_USER, exchange_refresh_token(provider, login_server))


def probe_image(provider: 'AzureContainerAppsProvider', image_uri: str, resources: Inputs) -> bool:
    login_server = resources[ResourceKind.REGISTRY].get("login_server")
    repository = provider.naming.image_repository()
    tag = image_uri.rsplit(":", 1)[-1]

    token = _pull_token(login_server, exchange_refresh_token(provider, login_server), repository)
    response = requests.head(
        f"https://{login_server}/v2/{repository}/manifests/{tag}",
        headers={"Authorization": f"Bearer {token}", "Accept": MANIFEST_MEDIA_TYPES},
        timeout=REQUEST_TIMEOUT_SECONDS
    )
    if response.status_code == 404:
        return False
    response.raise_for_status()
    logger.info(f"[Azure] Image digest: {response.headers.get('Docker-Content-Digest')}")
    return True


# ==========================================
# Revision template and container app
# ==========================================

def build_template(provider: 'AzureContainerAppsProvider', image_uri: str) -> dict:
    spec = provider.spec
    tag = image_uri.rsplit(":", 1)[-1]
    return {
        "revision_suffix": provider.naming.revision_suffix(tag),
        "containers": [{
            "name": provider.naming.container_app(),
            "image": image_uri,
            "resources": {
                "cpu": float(spec.cpu or CONSTANTS.AZURE_DEFAULT_CPU),
                "memory": spec.memory or CONSTANTS.AZURE_DEFAULT_MEMORY,
            },
            "env": [{"name": key, "value": value} for key, value in spec.environment.items()],
            "probes": [{
                "type": "Liveness",
                "http_get": {"path": spec.health_check_path, "port": spec.container_port},
                "period_seconds": spec.health_check_interval_seconds,
            }],
        }],
        "scale": {
            "min_replicas": int(spec.option("minReplicas", spec.desired_count)),
            "max_replicas": int(spec.option("maxReplicas", max(spec.desired_count, 1))),
        },
    }


def register_revision(provider: 'AzureContainerAppsProvider', image_uri: str, resources: Inputs) -> ResourceDescriptor:
    """
    Build the revision template for this image.

    Container Apps creates the revision when the app is updated with the
    template, so nothing is sent here.
    """
    template = build_template(provider, image_uri)
    name = f"{provider.naming.container_app()}--{template['revision_suffix']}"
    return ResourceDescriptor(ResourceKind.REVISION, name, name, {"template": template, "image": image_uri})


def update_service(provider: 'AzureContainerAppsProvider', revision: ResourceDescriptor, resources: Inputs) -> ResourceDescriptor:
    naming = provider.naming
    identity_id = resources[ResourceKind.IDENTITY].identifier
    login_server = resources[ResourceKind.REGISTRY].get("login_server")

    app = {
        "location": provider.location,
        "managed_environment_id": resources[ResourceKind.CLUSTER].identifier,
        "identity": {
            "type": "UserAssigned",
            "user_assigned_identities": {identity_id: {}},
        },
        "configuration": {
            "active_revisions_mode": "Single",
            "ingress": {
                "external": True,
                "target_port": provider.spec.container_port,
                "transport": "auto",
            },
            "registries": [{"server": login_server, "identity": identity_id}],
        },
        "template": revision.get("template"),
    }

    logger.info(f"[Azure] Creating or updating container app {naming.container_app()}...")
    updated = provider.clients["containerapps"].container_apps.begin_create_or_update(
        resource_group_name=naming.resource_group(),
        container_app_name=naming.container_app(),
        container_app_envelope=app
    ).result()
    return service_descriptor(updated)


def is_service_stable(provider: 'AzureContainerAppsProvider', service: ResourceDescriptor) -> bool:
    app = get_container_app(provider)
    state = app.provisioning_state
    latest, ready = app.latest_revision_name, app.latest_ready_revision_name
    logger.debug(f"[Azure] {service.name}: provisioning={state} latest={latest} ready={ready}")
    return state == "Succeeded" and bool(latest) and latest == ready


def service_endpoint(provider: 'AzureContainerAppsProvider', service: ResourceDescriptor) -> Optional[str]:
    fqdn = service.get("fqdn")
    if not fqdn:
        fqdn = service_descriptor(get_container_app(provider)).get("fqdn")
    return f"https://{fqdn}" if fqdn else None
