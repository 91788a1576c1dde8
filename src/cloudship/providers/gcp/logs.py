"""Cloud Logging fetching for the Cloud Run service."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, List

from google.cloud import logging as cloud_logging

from ... import constants as CONSTANTS
from ...core.log_stream import LogEntry

if TYPE_CHECKING:
    from .provider import GCPCloudRunProvider


def build_filter(service_name: str, since: datetime) -> str:
    start = since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return (
        'resource.type="cloud_run_revision" '
        f'AND resource.labels.service_name="{service_name}" '
        f'AND timestamp>="{start}"'
    )


def _message(payload) -> str:
    if payload is None:
        return ""
    if isinstance(payload, dict):
        return str(payload.get("message") or payload)
    return str(payload)


def fetch_logs(provider: 'GCPCloudRunProvider', since: datetime) -> List[LogEntry]:
    """Return up to GCP_LOG_PAGE_SIZE entries at or after `since`, oldest first."""
    entries = provider.clients["logging"].list_entries(
        filter_=build_filter(provider.naming.service(), since),
        order_by=cloud_logging.ASCENDING,
        max_results=CONSTANTS.GCP_LOG_PAGE_SIZE,
    )
    result = [
        LogEntry(
            timestamp=entry.timestamp or since,
            message=_message(entry.payload),
            source=(entry.resource.labels or {}).get("revision_name", "") if entry.resource else "",
        )
        for entry in entries
    ]
    return sorted(result, key=lambda entry: entry.timestamp)
