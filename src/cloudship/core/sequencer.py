"""
Provisioning sequencer.

Backends declare their infrastructure as a list of ProvisioningSteps with
named dependencies. resolve_order() flattens that list into one fixed linear
order; setup walks it forward, teardown walks the exact reverse.

Execution is strictly serial. Each step's descriptor is threaded into the
steps that declare a dependency on it.

Failure policy:
    setup    - the first failure aborts with the step and resource name
    discover - lookup only, never creates; used by the rollout gate
    teardown - never raises; every failure lands in the TeardownReport
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .exceptions import ConfigurationError, ErrorClass, ProvisioningError
from .protocols import ResourceAdapter
from .resources import LookupResult, NotFound, ResourceDescriptor, ResourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisioningStep:
    """
    One node of the provisioning graph.

    Attributes:
        kind: Resource kind the step manages
        depends_on: Kinds whose descriptors this step needs as inputs
        provisioned_by_setup: False for resources created by deploy
            (revision, service); teardown still removes them
    """

    kind: ResourceKind
    depends_on: tuple = ()
    provisioned_by_setup: bool = True


def resolve_order(steps: Sequence[ProvisioningStep]) -> List[ProvisioningStep]:
    """
    Flatten the declared steps into a dependency-respecting linear order.

    Ties are broken by declaration order, so a list that is already
    topologically ordered comes back unchanged.

    Raises:
        ConfigurationError: On duplicate kinds, unknown dependencies or cycles
    """
    by_kind: Dict[ResourceKind, ProvisioningStep] = {}
    for step in steps:
        if step.kind in by_kind:
            raise ConfigurationError(f"Duplicate provisioning step: {step.kind.value}")
        by_kind[step.kind] = step

    for step in steps:
        for dependency in step.depends_on:
            if dependency not in by_kind:
                raise ConfigurationError(
                    f"Step '{step.kind.value}' depends on undeclared step '{dependency.value}'"
                )

    ordered: List[ProvisioningStep] = []
    placed: set = set()
    remaining = list(steps)
    while remaining:
        for index, step in enumerate(remaining):
            if all(dependency in placed for dependency in step.depends_on):
                ordered.append(step)
                placed.add(step.kind)
                del remaining[index]
                break
        else:
            cycle = ", ".join(step.kind.value for step in remaining)
            raise ConfigurationError(f"Dependency cycle between provisioning steps: {cycle}")

    return ordered


@dataclass
class TeardownFailure:
    kind: ResourceKind
    name: str
    message: str


@dataclass
class TeardownReport:
    """Outcome of a teardown run."""

    removed: List[ResourceDescriptor] = field(default_factory=list)
    skipped: List[NotFound] = field(default_factory=list)
    failures: List[TeardownFailure] = field(default_factory=list)
    attempted: List[ResourceKind] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def summary_lines(self) -> List[str]:
        """Lines naming every resource that must be checked manually."""
        return [
            f"{failure.kind.label}: {failure.name} ({failure.message})"
            for failure in self.failures
        ]


class ProvisioningSequencer:
    """
    Drives a ResourceAdapter through the resolved step order.

    Example:
        sequencer = ProvisioningSequencer(provider, provider.steps)
        resources = sequencer.setup()
        report = sequencer.teardown()
    """

    def __init__(self, adapter: ResourceAdapter, steps: Sequence[ProvisioningStep]):
        self.adapter = adapter
        self.order = resolve_order(steps)

    @property
    def setup_steps(self) -> List[ProvisioningStep]:
        return [step for step in self.order if step.provisioned_by_setup]

    @staticmethod
    def _inputs_for(step: ProvisioningStep, resolved: Dict[ResourceKind, LookupResult]) -> Dict[ResourceKind, ResourceDescriptor]:
        return {
            dependency: resolved[dependency]
            for dependency in step.depends_on
            if isinstance(resolved.get(dependency), ResourceDescriptor)
        }

    def setup(self) -> Dict[ResourceKind, ResourceDescriptor]:
        """
        Ensure every setup-provisioned resource, in order.

        Returns:
            Descriptors keyed by kind

        Raises:
            ProvisioningError: On the first failed step
        """
        resolved: Dict[ResourceKind, ResourceDescriptor] = {}
        steps = self.setup_steps

        for index, step in enumerate(steps, start=1):
            logger.info(f"[{index}/{len(steps)}] {step.kind.label}")
            try:
                resolved[step.kind] = self.adapter.ensure(step.kind, self._inputs_for(step, resolved))
            except Exception as e:
                raise ProvisioningError(
                    step.kind.label,
                    self.adapter.resource_name(step.kind),
                    provider=self.adapter.name,
                    cause=e
                ) from e

        return resolved

    def discover(self, kinds: Optional[Iterable[ResourceKind]] = None) -> Dict[ResourceKind, LookupResult]:
        """
        Look up resources without creating anything.

        Args:
            kinds: Kinds to look up; defaults to the setup-provisioned kinds

        Returns:
            ResourceDescriptor or NotFound per kind, in resolved order
        """
        wanted = set(kinds) if kinds is not None else {step.kind for step in self.setup_steps}
        resolved: Dict[ResourceKind, LookupResult] = {}
        for step in self.order:
            if step.kind not in wanted:
                continue
            resolved[step.kind] = self.adapter.lookup(step.kind, self._inputs_for(step, resolved))
        return resolved

    def teardown(self) -> TeardownReport:
        """
        Remove every resource in the exact reverse of the setup order.

        A forward lookup pass first resolves descriptors so dependent
        lookups get their inputs. Nothing here raises: lookup and removal
        failures are collected and the sequence continues.
        """
        report = TeardownReport()
        resolved: Dict[ResourceKind, LookupResult] = {}

        for step in self.order:
            try:
                resolved[step.kind] = self.adapter.lookup(step.kind, self._inputs_for(step, resolved))
            except Exception as e:
                logger.warning(f"✗ Could not look up {step.kind.label}: {e}")
                report.failures.append(
                    TeardownFailure(step.kind, self.adapter.resource_name(step.kind), f"lookup failed: {e}")
                )

        for step in reversed(self.order):
            found = resolved.get(step.kind)
            if found is None:
                continue
            if isinstance(found, NotFound):
                logger.info(f"  {step.kind.label} not found (already deleted?): {found.name}")
                report.skipped.append(found)
                continue

            report.attempted.append(step.kind)
            logger.info(f"Removing {step.kind.label}: {found.name}")
            try:
                self.adapter.remove(found)
            except Exception as e:
                error_class = getattr(e, "error_class", ErrorClass.PARTIAL_TEARDOWN_FAILURE)
                logger.warning(f"✗ Failed to remove {step.kind.label} {found.name} [{error_class.value}]: {e}")
                report.failures.append(TeardownFailure(step.kind, found.name, str(e)))
                continue
            logger.info(f"✓ Removed {step.kind.label}: {found.name}")
            report.removed.append(found)

        return report
