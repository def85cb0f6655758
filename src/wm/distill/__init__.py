"""Distillation: turn session transcripts into curated guardrails and metis."""

from wm.distill.cache import CacheEntry, ExtractionCache
from wm.distill.pipeline import DistillationPipeline, DistillReport, DistillState, SessionPlan

__all__ = [
    "CacheEntry",
    "DistillReport",
    "DistillState",
    "DistillationPipeline",
    "ExtractionCache",
    "SessionPlan",
]
