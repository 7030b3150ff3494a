"""Horde job client, conversation memory, prompts and orchestration."""

from .ai_types import Generation, GenerationParams, JobCheck, JobOptions, JobStatus
from .client import ClientSettings, HordeClient, parse_retry_after

__all__ = [
    "ClientSettings",
    "HordeClient",
    "parse_retry_after",
    "Generation",
    "GenerationParams",
    "JobCheck",
    "JobOptions",
    "JobStatus",
]
