"""Workflow package — chapter step graph, pipeline, illustrations and controller."""

from workflow.graph import StepNodes, build_step_graph, run_step
from workflow.state import ChapterStepState
from workflow.conditions import (
    route_after_load,
    route_after_generate,
    route_after_persist,
    route_after_advance,
)
from workflow.callbacks import StepCallback, LoggingCallback, RichProgressCallback
from workflow.live_preview import LivePreview
from workflow.pipeline import BookPipeline, BookSnapshot, StepOutcome, StepResult
from workflow.illustrations import FailedIllustrationReport, IllustrationPipeline, RetryTally
from workflow.controller import BookController, RestartResult

__all__ = [
    "StepNodes",
    "build_step_graph",
    "run_step",
    "ChapterStepState",
    "route_after_load",
    "route_after_generate",
    "route_after_persist",
    "route_after_advance",
    "StepCallback",
    "LoggingCallback",
    "RichProgressCallback",
    "LivePreview",
    "BookPipeline",
    "BookSnapshot",
    "StepOutcome",
    "StepResult",
    "IllustrationPipeline",
    "RetryTally",
    "FailedIllustrationReport",
    "BookController",
    "RestartResult",
]
