"""Event processing pipeline architecture for calendarswitch_lite.

One evaluation runs the feed through a fixed sequence of synchronous stages that
share a ProcessingContext:

    pipeline = EventProcessingPipeline()
    pipeline.add_stage(ParseStage())
    pipeline.add_stage(ExpansionStage())
    pipeline.add_stage(EligibilityStage())
    pipeline.add_stage(ResolveStage())

    result = pipeline.process(ProcessingContext(config=config, now=now, raw_content=text))

Stages never raise out of the pipeline: a stage failure or unexpected exception is
recorded on the aggregated ProcessingResult and stops the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

from calendarswitch_lite.calendar.lite_models import (
    EventDiagnostic,
    EventInstance,
    LiteCalendarEvent,
    ResolutionResult,
    ResolvedZone,
)
from calendarswitch_lite.core.config_loader import SwitchConfig

logger = logging.getLogger(__name__)


@dataclass
class ProcessingContext:
    """Context passed between pipeline stages.

    Holds the configuration snapshot and current instant plus the state each stage
    writes for the next one. A context is built per evaluation and never reused.
    """

    config: SwitchConfig = field(default_factory=SwitchConfig)
    hub_timezone: Optional[str] = None

    # Time context
    now: Optional[datetime] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None

    # Processing state (modified by stages)
    raw_content: Optional[str] = None
    hub_zone: Optional[ResolvedZone] = None
    calendar_zone: Optional[ResolvedZone] = None
    events: list[LiteCalendarEvent] = field(default_factory=list)  # Built events
    instances: list[EventInstance] = field(default_factory=list)  # After expansion
    eligible: list[EventInstance] = field(default_factory=list)  # After filtering
    resolution: Optional[ResolutionResult] = None
    diagnostics: list[EventDiagnostic] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.hub_timezone is None:
            self.hub_timezone = self.config.hub_timezone


@dataclass
class ProcessingResult:
    """Result from a pipeline stage or complete pipeline execution."""

    success: bool = True
    events: list[EventInstance] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # Statistics
    events_in: int = 0  # Items received by stage
    events_out: int = 0  # Items emitted by stage
    events_filtered: int = 0  # Items removed by stage
    stage_name: str = ""

    def add_error(self, message: str) -> None:
        """Add an error message and mark as failed."""
        self.errors.append(message)
        self.success = False
        logger.error("[%s] %s", self.stage_name, message)


class EventProcessor(Protocol):
    """Protocol for a single stage in the event processing pipeline."""

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Process the context according to this stage's responsibility.

        Args:
            context: Processing context with state from earlier stages

        Returns:
            Result with statistics and any errors/warnings
        """
        ...

    @property
    def name(self) -> str:
        """Name of this processing stage for logging."""
        ...


class EventProcessingPipeline:
    """Orchestrates processing through multiple stages, in insertion order."""

    def __init__(self) -> None:
        """Initialize empty pipeline."""
        self.stages: list[EventProcessor] = []

    def add_stage(self, stage: EventProcessor) -> EventProcessingPipeline:
        """Add a processing stage to the pipeline (builder pattern).

        Returns:
            Self for method chaining
        """
        self.stages.append(stage)
        logger.debug("Added stage to pipeline: %s", stage.name)
        return self

    def process(self, context: ProcessingContext) -> ProcessingResult:
        """Execute all pipeline stages in sequence.

        Args:
            context: Processing context with initial state

        Returns:
            Aggregated result from all stages
        """
        logger.debug("Starting pipeline with %d stages", len(self.stages))
        aggregated_result = ProcessingResult(stage_name="Pipeline")

        for i, stage in enumerate(self.stages):
            stage_num = i + 1
            logger.debug("Executing stage %d/%d: %s", stage_num, len(self.stages), stage.name)

            try:
                stage_result = stage.process(context)
            except Exception as e:
                aggregated_result.add_error(f"Stage {stage.name} raised exception: {e}")
                logger.exception("Stage %s failed with exception", stage.name)
                return aggregated_result

            logger.debug(
                "Stage %s/%s (%s) completed: success=%s, in=%s, out=%s, warnings=%s, errors=%s",
                stage_num,
                len(self.stages),
                stage.name,
                stage_result.success,
                stage_result.events_in,
                stage_result.events_out,
                len(stage_result.warnings),
                len(stage_result.errors),
            )

            aggregated_result.warnings.extend(stage_result.warnings)
            aggregated_result.errors.extend(stage_result.errors)

            if not stage_result.success:
                aggregated_result.success = False
                logger.error(
                    "Pipeline stopped at stage %s (%s) due to failure", stage_num, stage.name
                )
                return aggregated_result

            aggregated_result.metadata.update(stage_result.metadata)

        aggregated_result.success = True
        aggregated_result.events = context.eligible
        aggregated_result.events_out = len(context.eligible)
        logger.debug(
            "Pipeline completed: %s eligible instances, %s warnings",
            aggregated_result.events_out,
            len(aggregated_result.warnings),
        )
        return aggregated_result

    def clear_stages(self) -> None:
        """Remove all stages from the pipeline."""
        self.stages.clear()
        logger.debug("Cleared all pipeline stages")

    def __repr__(self) -> str:
        stage_names = [stage.name for stage in self.stages]
        return f"EventProcessingPipeline(stages={stage_names})"
