"""Log Analytics fetching for the container app."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, List

from azure.monitor.query import LogsQueryStatus

from ... import constants as CONSTANTS
from ...core.log_stream import LogEntry

if TYPE_CHECKING:
    from .provider import AzureContainerAppsProvider


def build_query(app_name: str) -> str:
    return (
        "ContainerAppConsoleLogs_CL"
        f" | where ContainerAppName_s == '{app_name}'"
        " | project TimeGenerated, Log_s, RevisionName_s"
        " | order by TimeGenerated asc"
        f" | take {CONSTANTS.AZURE_LOG_FETCH_LIMIT}"
    )


def fetch_logs(provider: 'AzureContainerAppsProvider', since: datetime) -> List[LogEntry]:
    """Return console log lines at or after `since`, oldest first."""
    response = provider.clients["logs_query"].query_workspace(
        workspace_id=provider.workspace_customer_id(),
        query=build_query(provider.naming.container_app()),
        timespan=(since, datetime.now(timezone.utc))
    )
    tables = response.tables if response.status == LogsQueryStatus.SUCCESS else response.partial_data

    entries = [
        LogEntry(timestamp=row[0], message=str(row[1] or ""), source=str(row[2] or ""))
        for table in tables or []
        for row in table.rows
    ]
    return sorted(entries, key=lambda entry: entry.timestamp)
