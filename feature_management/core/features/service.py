"""
Feature Manager - Main evaluation logic.

Evaluates features with support for:
- Filter chains with All/Any requirement types (AlwaysOn/On built in)
- Contextual filters dispatched on the evaluation context's capabilities
- Variant allocation with status overrides
- Fire-and-forget evaluation telemetry

The evaluation itself (evaluate_definition) is synchronous and pure; the
async surface exists for the collaborators (definition provider,
targeting accessor, telemetry publishers).
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Iterable

import structlog

from feature_management.core.config import FeatureManagementSettings
from feature_management.core.errors import (
    ConfigurationError,
    DefinitionUnavailableError,
    FeatureManagementException,
    FilterEvaluationError,
    MissingFeatureError,
    UnknownFilterError,
)

from .allocation import VariantAllocator
from .context import EvaluationContext
from .filters import TargetingFilter
from .interfaces import (
    EvaluationResult,
    FeatureDefinition,
    FeatureDefinitionProvider,
    FeatureFilter,
    FeatureStatus,
    FilterConfiguration,
    FilterEvaluationContext,
    RequirementType,
    StatusOverride,
    TargetingContextAccessor,
    TelemetryPublisher,
    VariantDefinition,
)
from .registry import FilterRegistry, is_always_on
from .telemetry import EvaluationEvent, build_evaluation_event

logger = structlog.get_logger()


@dataclass(frozen=True)
class FeatureManagerOptions:
    """
    Attributes:
        ignore_missing_features: Unknown features evaluate disabled instead of raising
        ignore_missing_filters: Skip unregistered filters instead of raising
        targeting_ignore_case: Case-insensitive user/group matching, applied to the
            allocator and to the Targeting filters of the registry
        telemetry_enabled: Global switch over per-feature telemetry
    """
    ignore_missing_features: bool = True
    ignore_missing_filters: bool = False
    targeting_ignore_case: bool = False
    telemetry_enabled: bool = True

    @classmethod
    def from_settings(cls, settings: FeatureManagementSettings) -> "FeatureManagerOptions":
        return cls(
            ignore_missing_features=settings.ignore_missing_features,
            ignore_missing_filters=settings.ignore_missing_filters,
            targeting_ignore_case=settings.targeting_ignore_case,
            telemetry_enabled=settings.telemetry_enabled,
        )


class FeatureManager:
    """
    Feature evaluation engine.

    Evaluation steps:
    1. Fetch the definition from the provider (fresh on every call)
    2. Decide enabled/disabled from status and the filter chain
    3. Allocate a variant; its status override replaces the decision
    4. Publish an evaluation event when telemetry is enabled

    Usage:
        manager = FeatureManager(provider)
        if await manager.is_enabled("Beta", EvaluationContext.for_targeting("Jeff")):
            ...
    """

    def __init__(
        self,
        provider: FeatureDefinitionProvider,
        registry: FilterRegistry | None = None,
        *,
        options: FeatureManagerOptions | None = None,
        publishers: Iterable[TelemetryPublisher] = (),
        accessor: TargetingContextAccessor | None = None,
    ):
        self.options = options or FeatureManagerOptions()
        if registry is None:
            registry = FilterRegistry.with_builtins(ignore_case=self.options.targeting_ignore_case)
        elif self.options.targeting_ignore_case:
            # A caller-supplied registry follows the manager's case option
            for feature_filter in registry.filters():
                if isinstance(feature_filter, TargetingFilter):
                    feature_filter.ignore_case = True
        self.registry = registry.freeze()
        self.provider = provider
        self.accessor = accessor
        self.allocator = VariantAllocator(ignore_case=self.options.targeting_ignore_case)
        self._publishers: list[TelemetryPublisher] = list(publishers)
        self._pending: set[asyncio.Task] = set()

    # ============================================================
    # MAIN EVALUATION
    # ============================================================

    async def evaluate(
        self,
        feature_name: str,
        context: EvaluationContext | None = None,
    ) -> EvaluationResult:
        """
        Evaluate a feature with detailed result.

        Raises:
            DefinitionUnavailableError: The provider failed
            MissingFeatureError: Unknown feature and missing features are not ignored
            UnknownFilterError / AmbiguousFilterError / ConfigurationError: Bad configuration
            FilterEvaluationError: A filter raised
        """
        if not feature_name:
            raise ValueError("feature_name is required")

        definition = await self._get_definition(feature_name)
        if definition is None:
            return EvaluationResult.missing(feature_name)

        context = await self._resolve_context(context)
        result = self.evaluate_definition(definition, context)
        self._publish(result)
        return result

    async def is_enabled(self, feature_name: str, context: EvaluationContext | None = None) -> bool:
        """Check if a feature is enabled."""
        result = await self.evaluate(feature_name, context)
        return result.is_enabled

    async def get_variant(
        self,
        feature_name: str,
        context: EvaluationContext | None = None,
    ) -> VariantDefinition | None:
        """Get the variant assigned to the caller, None when there is none."""
        result = await self.evaluate(feature_name, context)
        return result.variant

    async def get_feature_names(self) -> AsyncIterator[str]:
        """Iterate the names of every feature the provider knows."""
        async for definition in self._iter_definitions():
            yield definition.name

    async def evaluate_all(
        self,
        context: EvaluationContext | None = None,
    ) -> dict[str, EvaluationResult]:
        """
        Evaluate every feature for one context.

        Useful for sending to frontend.
        """
        context = await self._resolve_context(context)
        results: dict[str, EvaluationResult] = {}

        async for definition in self._iter_definitions():
            result = self.evaluate_definition(definition, context)
            self._publish(result)
            results[definition.name] = result

        return results

    def evaluate_definition(
        self,
        definition: FeatureDefinition,
        context: EvaluationContext | None = None,
    ) -> EvaluationResult:
        """Evaluate a definition without any I/O."""
        context = context or EvaluationContext.none()
        targeting = context.targeting

        is_enabled = self._is_enabled(definition, context)

        if definition.variants and targeting is None and self._needs_targeting(definition, is_enabled):
            logger.warning("feature_variant.no_targeting_context", feature=definition.name)

        assignment = self.allocator.assign(
            definition.allocation,
            definition.variants,
            definition.name,
            targeting,
            is_enabled,
        )

        variant = assignment.variant
        if variant is not None and definition.status is not FeatureStatus.DISABLED:
            if variant.status_override is StatusOverride.ENABLED:
                is_enabled = True
            elif variant.status_override is StatusOverride.DISABLED:
                is_enabled = False

        logger.debug(
            "feature_flag.evaluated",
            feature=definition.name,
            enabled=is_enabled,
            variant=variant.name if variant else None,
            reason=assignment.reason.value,
        )

        return EvaluationResult(
            feature_name=definition.name,
            is_enabled=is_enabled,
            variant=variant,
            variant_assignment_reason=assignment.reason,
            feature_definition=definition,
            targeting_context=targeting,
        )

    # ============================================================
    # FILTER CHAIN
    # ============================================================

    def _is_enabled(self, definition: FeatureDefinition, context: EvaluationContext) -> bool:
        if definition.status is FeatureStatus.DISABLED:
            return False

        if not definition.enabled_for:
            return definition.requirement_type is RequirementType.ALL

        if definition.requirement_type is RequirementType.ALL and self.options.ignore_missing_filters:
            raise ConfigurationError(
                "Ignoring missing feature filters cannot be combined with a feature "
                f"of requirement type 'All' ('{definition.name}')."
            )

        # All ends on the first False, Any on the first True
        target = definition.requirement_type is RequirementType.ANY

        for configuration in definition.enabled_for:
            if is_always_on(configuration.name):
                if target:
                    return True
                continue

            feature_filter = self.registry.resolve(configuration.name)
            if feature_filter is None:
                if not self.options.ignore_missing_filters:
                    raise UnknownFilterError(configuration.name, definition.name)
                logger.warning(
                    "feature_filter.missing",
                    feature=definition.name,
                    filter=configuration.name,
                )
                continue

            if not feature_filter.accepts(context):
                if not feature_filter.contextual_only:
                    continue
                outcome = False
            else:
                outcome = self._run_filter(feature_filter, definition, configuration, context)

            if outcome is target:
                return target

        return not target

    def _run_filter(
        self,
        feature_filter: FeatureFilter,
        definition: FeatureDefinition,
        configuration: FilterConfiguration,
        context: EvaluationContext,
    ) -> bool:
        try:
            settings = feature_filter.bind_parameters(configuration.parameters)
            filter_context = FilterEvaluationContext(
                feature_name=definition.name,
                parameters=configuration.parameters,
                settings=settings,
            )
            return bool(feature_filter.evaluate(filter_context, context))
        except FeatureManagementException:
            raise
        except Exception as e:
            raise FilterEvaluationError(definition.name, configuration.name) from e

    @staticmethod
    def _needs_targeting(definition: FeatureDefinition, is_enabled: bool) -> bool:
        allocation = definition.allocation
        if allocation is None or not is_enabled:
            return False
        return bool(allocation.user or allocation.group or allocation.percentile)

    # ============================================================
    # COLLABORATORS
    # ============================================================

    async def _get_definition(self, feature_name: str) -> FeatureDefinition | None:
        try:
            definition = await self.provider.get_feature_definition(feature_name)
        except FeatureManagementException:
            raise
        except Exception as e:
            raise DefinitionUnavailableError(feature_name) from e

        if definition is None:
            if not self.options.ignore_missing_features:
                raise MissingFeatureError(feature_name)
            logger.warning("feature_flag.missing", feature=feature_name)

        return definition

    async def _iter_definitions(self) -> AsyncIterator[FeatureDefinition]:
        try:
            iterator = self.provider.get_all_feature_definitions()
        except FeatureManagementException:
            raise
        except Exception as e:
            raise DefinitionUnavailableError(None) from e

        while True:
            try:
                definition = await anext(iterator)
            except StopAsyncIteration:
                return
            except FeatureManagementException:
                raise
            except Exception as e:
                raise DefinitionUnavailableError(None) from e
            yield definition

    async def _resolve_context(self, context: EvaluationContext | None) -> EvaluationContext:
        context = context or EvaluationContext.none()
        if context.targeting is None and self.accessor is not None:
            targeting = await self.accessor.get_context()
            if targeting is not None:
                context = context.with_targeting(targeting)
        return context

    # ============================================================
    # TELEMETRY
    # ============================================================

    def subscribe(self, publisher: TelemetryPublisher) -> None:
        """Add a telemetry publisher."""
        self._publishers.append(publisher)

    def unsubscribe(self, publisher: TelemetryPublisher) -> bool:
        """Remove a telemetry publisher."""
        try:
            self._publishers.remove(publisher)
        except ValueError:
            return False
        return True

    @property
    def publishers(self) -> tuple[TelemetryPublisher, ...]:
        return tuple(self._publishers)

    def _publish(self, result: EvaluationResult) -> None:
        definition = result.feature_definition
        if (
            definition is None
            or not definition.telemetry_enabled
            or not self.options.telemetry_enabled
            or not self._publishers
        ):
            return

        event = build_evaluation_event(result)
        for publisher in self._publishers:
            task = asyncio.create_task(self._publish_to(publisher, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _publish_to(self, publisher: TelemetryPublisher, event: EvaluationEvent) -> None:
        try:
            await publisher.publish(event)
        except Exception as e:
            logger.error(
                "feature_telemetry.publish_failed",
                publisher=type(publisher).__name__,
                feature=event.feature_name,
                error=str(e),
            )

    async def flush(self) -> None:
        """Wait for in-flight telemetry to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
