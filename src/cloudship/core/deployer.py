"""
Deployer - per-backend façade.

One Deployer drives one backend for one DeploymentSpec. It is the only
object the CLI talks to:

    deployer = Deployer().init(config_path, backend="aws-fargate")
    deployer.setup()
    result = deployer.deploy()
    deployer.logs()
    deployer.destroy()

setup() and deploy() propagate DeploymentErrors; destroy() never raises
and reports what it could not remove instead.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, TYPE_CHECKING

from .config_loader import load_deployment_spec
from .context import DeploymentSpec
from .exceptions import DeploymentError
from .log_stream import stream_logs
from .registry import ProviderRegistry
from .resources import ResourceDescriptor, ResourceKind
from .rollout import RolloutController, RolloutResult
from .sequencer import ProvisioningSequencer, TeardownFailure, TeardownReport
from .waiter import stability_waiter

if TYPE_CHECKING:
    from .protocols import CloudProvider

logger = logging.getLogger(__name__)


class Deployer:
    """
    Binds a provider to a spec and exposes setup/deploy/destroy/logs.

    Args:
        provider: An already initialized provider (tests); normally set by init()
        spec: The DeploymentSpec the provider was initialized with
        tag_factory: Image tag factory; defaults to the git/timestamp tag
        sleep: Sleep function for every wait (tests inject a no-op)
    """

    def __init__(
        self,
        provider: Optional['CloudProvider'] = None,
        spec: Optional[DeploymentSpec] = None,
        tag_factory: Optional[Callable[[], str]] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self._provider = provider
        self._spec = spec
        self._tag_factory = tag_factory
        self._sleep = sleep

    @property
    def provider(self) -> 'CloudProvider':
        if self._provider is None:
            raise RuntimeError("Deployer not initialized. Call init() first.")
        return self._provider

    @property
    def spec(self) -> DeploymentSpec:
        if self._spec is None:
            raise RuntimeError("Deployer not initialized. Call init() first.")
        return self._spec

    def init(self, config_path: Path, backend: Optional[str] = None) -> 'Deployer':
        """
        Load the config, resolve the backend and create authenticated clients.

        Raises:
            ConfigurationError: Bad config or unresolvable credentials
            ProviderNotFoundError: Unknown backend
        """
        # Importing the providers package registers every backend
        from .. import providers  # noqa: F401

        spec = load_deployment_spec(Path(config_path), backend=backend)
        provider = ProviderRegistry.get(spec.backend)
        logger.info(f"Initializing {spec.backend} for service '{spec.service_name}' in {spec.region}")
        provider.initialize_clients(spec)

        self._spec = spec
        self._provider = provider
        return self

    def _sequencer(self) -> ProvisioningSequencer:
        return ProvisioningSequencer(self.provider, self.provider.steps)

    def setup(self) -> Dict[ResourceKind, ResourceDescriptor]:
        """
        Provision the infrastructure. Idempotent.

        Raises:
            ProvisioningError: On the first failed step
        """
        logger.info(f"Setting up {self.provider.name} infrastructure for '{self.spec.service_name}'")
        resources = self._sequencer().setup()
        logger.info(f"✓ Infrastructure ready ({len(resources)} resources)")
        logger.info(f"Next: cloudship {self.spec.backend} deploy {self.spec.config_path or '<config-path>'}")
        return resources

    def deploy(self) -> RolloutResult:
        """
        Publish a new image and roll the service onto it.

        Raises:
            PreconditionError: If setup has not been run
            DeploymentError: On any rollout failure
        """
        from ..runner import build_image_tag

        controller = RolloutController(
            target=self.provider,
            sequencer=self._sequencer(),
            tag_factory=self._tag_factory or build_image_tag,
            waiter=stability_waiter(
                max_iterations=getattr(self.provider, "stability_max_iterations", None),
                sleep=self._sleep,
            ),
            setup_command=self.spec.setup_command(),
            sleep=self._sleep,
        )
        result = controller.run()

        logger.info(f"✓ Deployed {result.image_uri}")
        if result.endpoint:
            logger.info(f"  Service URL: {result.endpoint}")
        return result

    def destroy(self) -> TeardownReport:
        """
        Remove everything in reverse setup order. Never raises.

        Returns:
            TeardownReport; check `.succeeded` for a clean teardown
        """
        logger.info(f"Destroying {self.provider.name} resources for '{self.spec.service_name}'")
        try:
            report = self._sequencer().teardown()
        except Exception as e:
            logger.error(f"✗ Teardown could not start: {e}")
            report = TeardownReport(
                failures=[TeardownFailure(ResourceKind.SERVICE, self.spec.service_name, str(e))]
            )

        if report.succeeded:
            logger.info(
                f"✓ Teardown complete: {len(report.removed)} removed, "
                f"{len(report.skipped)} already absent"
            )
            return report

        logger.warning("=" * 60)
        logger.warning("Teardown finished with errors. Check these resources manually:")
        for line in report.summary_lines():
            logger.warning(f"  - {line}")
        try:
            hints = self.provider.manual_check_hint()
        except DeploymentError as e:
            logger.debug(f"Could not build manual check hints: {e}")
            hints = []
        for hint in hints:
            logger.warning(f"  {hint}")
        logger.warning(f"Region: {self.spec.region}")
        logger.warning("=" * 60)
        return report

    def logs(
        self,
        follow: bool = True,
        max_polls: Optional[int] = None,
        emit: Callable[[str], None] = print
    ) -> int:
        """Stream service logs until interrupted. Returns the number of lines emitted."""
        logger.info(f"Streaming logs for '{self.spec.service_name}' (Ctrl-C to stop)")
        return stream_logs(self.provider, emit=emit, follow=follow, max_polls=max_polls, sleep=self._sleep)
