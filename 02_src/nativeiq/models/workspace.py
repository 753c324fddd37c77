"""Organization workspace items surfaced next to chat: insights and tasks."""

from dataclasses import asdict, dataclass, field
from datetime import datetime


@dataclass
class InsightSource:
    """Where an insight was drawn from (a channel, doc or dashboard)."""

    label: str
    url: str
    timestamp: str | None = None


@dataclass
class Insight:
    """A finding the assistant surfaced for an organization."""

    id: str
    organization_id: str
    title: str
    type: str  # e.g. "decision", "risk", "blocker", "trend", "summary"
    created_at: datetime
    description: str | None = None
    impact: str | None = None  # e.g. "low", "medium", "high", "critical"
    sources: list[InsightSource] = field(default_factory=list)

    def __post_init__(self):
        self.sources = [
            s if isinstance(s, InsightSource) else InsightSource(**s) for s in self.sources
        ]

    def mentions_team(self, team: str) -> bool:
        """Case-insensitive match of `team` inside any source label."""
        needle = team.lower()
        return any(needle in source.label.lower() for source in self.sources)

    def to_dict(self) -> dict:
        result = asdict(self)
        result["created_at"] = self.created_at.isoformat()
        return result


@dataclass
class Task:
    """A tracked piece of work within an organization."""

    id: str
    organization_id: str
    title: str
    state: str  # e.g. "todo", "in_progress", "done"
    created_at: datetime
    description: str | None = None
    assignee: str | None = None

    def to_dict(self) -> dict:
        result = asdict(self)
        result["created_at"] = self.created_at.isoformat()
        return result
