"""Generation orchestration: job lifecycle, cancellation and reply parsing."""

from .chat_orchestrator import ChatOrchestrator
from .output_parser import PLACEHOLDER_REPLY, parse_reply
from .types import CancellationToken, ChatBotConfig, GenerationJob, GenerationPhase, JobState

__all__ = [
    "ChatOrchestrator",
    "ChatBotConfig",
    "CancellationToken",
    "GenerationJob",
    "GenerationPhase",
    "JobState",
    "PLACEHOLDER_REPLY",
    "parse_reply",
]
