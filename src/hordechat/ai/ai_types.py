"""Wire-level contracts for the Horde asynchronous text generation API."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Mapping


def _drop_unset(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True)
class GenerationParams:
    """Sampling parameters submitted with every generation job."""

    max_context_length: int = 1024
    max_length: int = 80
    n: int = 1
    rep_pen: float = 1.08
    rep_pen_range: int = 1024
    rep_pen_slope: float = 0.7
    sampler_order: list[int] = field(default_factory=lambda: [6, 0, 1, 2, 3, 4, 5])
    temperature: float = 0.62
    tfs: float = 1.0
    top_a: float = 0.0
    top_k: int = 0
    top_p: float = 0.9
    typical: float = 1.0
    singleline: bool | None = True
    frmtadsnsp: bool | None = None
    frmtrmblln: bool | None = None
    frmtrmspch: bool | None = None
    frmttriminc: bool | None = None
    soft_prompt: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return _drop_unset(asdict(self))


@dataclass(slots=True)
class JobOptions:
    """Job-level options: sampling parameters plus worker/model routing."""

    params: GenerationParams = field(default_factory=GenerationParams)
    models: list[str] = field(default_factory=list)
    workers: list[str] = field(default_factory=list)
    softprompts: list[str] | None = None
    trusted_workers: bool | None = None
    nsfw: bool | None = None

    def with_params(self, **overrides: Any) -> JobOptions:
        """Return a copy whose sampling parameters carry ``overrides``."""

        return replace(self, params=replace(self.params, **overrides))

    def to_payload(self, prompt: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": prompt,
            "params": self.params.to_payload(),
            "models": list(self.models),
            "workers": list(self.workers),
        }
        payload.update(
            _drop_unset(
                {
                    "softprompts": list(self.softprompts) if self.softprompts is not None else None,
                    "trusted_workers": self.trusted_workers,
                    "nsfw": self.nsfw,
                }
            )
        )
        return payload


@dataclass(slots=True)
class JobCheck:
    """Lightweight job status returned by the check endpoint."""

    finished: int = 0
    processing: int = 0
    restarted: int = 0
    waiting: int = 0
    done: bool = False
    faulted: bool = False
    wait_time: int = 0
    queue_position: int = 0
    kudos: float = 0.0
    is_possible: bool = True

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> JobCheck:
        return cls(**_check_fields(payload))


@dataclass(slots=True)
class Generation:
    """Single generated completion attached to a finished job."""

    text: str = ""
    model: str | None = None
    worker_id: str | None = None
    worker_name: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Generation:
        return cls(
            text=str(payload.get("text") or ""),
            model=payload.get("model"),
            worker_id=payload.get("worker_id"),
            worker_name=payload.get("worker_name"),
        )


@dataclass(slots=True)
class JobStatus(JobCheck):
    """Full job status, including generations once the job is done."""

    generations: list[Generation] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> JobStatus:
        raw_generations = payload.get("generations") or []
        generations = [
            Generation.from_payload(item) for item in raw_generations if isinstance(item, Mapping)
        ]
        return cls(generations=generations, **_check_fields(payload))

    @property
    def text(self) -> str:
        """Text of the first generation, or an empty string when none exist."""

        return self.generations[0].text if self.generations else ""


def _check_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "finished": int(payload.get("finished", 0) or 0),
        "processing": int(payload.get("processing", 0) or 0),
        "restarted": int(payload.get("restarted", 0) or 0),
        "waiting": int(payload.get("waiting", 0) or 0),
        "done": bool(payload.get("done", False)),
        "faulted": bool(payload.get("faulted", False)),
        "wait_time": int(payload.get("wait_time", 0) or 0),
        "queue_position": int(payload.get("queue_position", 0) or 0),
        "kudos": float(payload.get("kudos", 0) or 0),
        "is_possible": bool(payload.get("is_possible", True)),
    }


__all__ = [
    "GenerationParams",
    "JobOptions",
    "JobCheck",
    "JobStatus",
    "Generation",
]
