"""Batch pipeline: stage graph per entity type and the batch runner."""

from __future__ import annotations

from .context import EntityBatch, EntityCounters
from .orchestrator import CancelCheck, PipelineStage, StagePipeline
from .runner import BatchReport, EntityOutcome, process_entity_type, run_batch
from .stages import (
    AccumulateStage,
    MergeStage,
    PublishStage,
    ResolveStage,
    ScoreStage,
    ValidatePolicyStage,
    VersionStage,
    pipeline_for,
)

__all__ = [
    "AccumulateStage",
    "BatchReport",
    "CancelCheck",
    "EntityBatch",
    "EntityCounters",
    "EntityOutcome",
    "MergeStage",
    "PipelineStage",
    "PublishStage",
    "ResolveStage",
    "ScoreStage",
    "StagePipeline",
    "ValidatePolicyStage",
    "VersionStage",
    "pipeline_for",
    "process_entity_type",
    "run_batch",
]
