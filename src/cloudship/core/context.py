"""
DeploymentSpec: the loaded deployment configuration.

DeploymentSpec is the single immutable record every component reads its
settings from. It is built once per run by config_loader after environment
variable merging has completed, and passed explicitly to the provider
instead of living in module globals.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class DeploymentSpec:
    """
    Parsed deployment configuration.

    Attributes:
        backend: Backend identifier (e.g., "aws-fargate")
        service_name: Logical service name; all resource names derive from it
        region: Cloud region / location
        dockerfile_path: Absolute path to the Dockerfile
        build_context: Absolute path to the docker build context
        container_port: Port the container listens on
        cpu: Backend-specific CPU size, None for the backend default
        memory: Backend-specific memory size, None for the backend default
        desired_count: Desired replica / task count
        health_check_path: HTTP path used for health checks
        health_check_interval_seconds: Health check interval
        enable_https: Expose HTTPS where the backend supports it
        environment: Merged container environment (.env base, map overrides)
        options: Backend-specific settings (name overrides, project ids, ...)
        config_path: Path of the YAML file this spec was loaded from
    """

    backend: str
    service_name: str
    region: str
    dockerfile_path: Path
    build_context: Path
    container_port: int = 8080
    cpu: Optional[str] = None
    memory: Optional[str] = None
    desired_count: int = 1
    health_check_path: str = "/health"
    health_check_interval_seconds: int = 30
    enable_https: bool = False
    environment: Mapping[str, str] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)
    config_path: Optional[Path] = None

    def __post_init__(self):
        # Freeze the mappings so a DeploymentSpec cannot be mutated after loading
        object.__setattr__(self, "environment", MappingProxyType(dict(self.environment)))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def option(self, key: str, default: Any = None) -> Any:
        """
        Get a backend-specific option.

        Example:
            >>> spec.option("clusterName", f"{spec.service_name}-cluster")
            "orders-api-cluster"
        """
        value = self.options.get(key)
        return default if value is None else value

    def setup_command(self) -> str:
        """Command that provisions the infrastructure for this spec."""
        config = str(self.config_path) if self.config_path else "<config-path>"
        return f"cloudship {self.backend} setup {config}"
