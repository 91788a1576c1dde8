"""CloudWatch log fetching for the ECS service."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, List

from botocore.exceptions import ClientError

from ... import constants as CONSTANTS
from ...core.log_stream import LogEntry

if TYPE_CHECKING:
    from .provider import AWSFargateProvider


def fetch_logs(provider: 'AWSFargateProvider', since: datetime) -> List[LogEntry]:
    """Return up to AWS_LOG_FETCH_LIMIT events at or after `since`, oldest first."""
    try:
        response = provider.clients["logs"].filter_log_events(
            logGroupName=provider.naming.log_group(),
            startTime=int(since.timestamp() * 1000),
            limit=CONSTANTS.AWS_LOG_FETCH_LIMIT
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceNotFoundException":
            return []
        raise

    entries = [
        LogEntry(
            timestamp=datetime.fromtimestamp(event["timestamp"] / 1000, tz=timezone.utc),
            message=event["message"],
            source=event.get("logStreamName", ""),
        )
        for event in response.get("events", [])
    ]
    return sorted(entries, key=lambda entry: entry.timestamp)
