from collections.abc import Sequence
from dataclasses import dataclass, field

from core.types import SessionData, SessionStatus


@dataclass
class ActivityUsage:
    activity_id: str
    session_count: int
    total_time_ms: int
    avg_accuracy: float
    completion_rate: float


@dataclass
class SessionAnalytics:
    total_sessions: int = 0
    completed_sessions: int = 0
    total_time_ms: int = 0
    avg_session_duration_ms: float = 0.0
    avg_accuracy: float = 0.0
    most_used_activities: list[ActivityUsage] = field(default_factory=list)
    suggestions_offered: int = 0
    suggestions_accepted: int = 0
    acceptance_rate: float = 0.0


def _duration(session: SessionData) -> int:
    return session.end_time - session.start_time if session.end_time is not None else 0


def summarize_sessions(sessions: Sequence[SessionData], top: int = 5) -> SessionAnalytics:
    """Aggregate ended sessions into per-activity usage and AI suggestion uptake."""
    ended = [s for s in sessions if s.end_time is not None]
    if not ended:
        return SessionAnalytics()

    usage: dict[str, ActivityUsage] = {}
    for s in ended:
        done = 1.0 if s.status == SessionStatus.COMPLETED else 0.0
        existing = usage.get(s.activity_id)
        if existing is None:
            usage[s.activity_id] = ActivityUsage(
                activity_id=s.activity_id,
                session_count=1,
                total_time_ms=_duration(s),
                avg_accuracy=s.metrics.accuracy,
                completion_rate=done,
            )
            continue
        n = existing.session_count
        existing.avg_accuracy = (existing.avg_accuracy * n + s.metrics.accuracy) / (n + 1)
        existing.completion_rate = (existing.completion_rate * n + done) / (n + 1)
        existing.total_time_ms += _duration(s)
        existing.session_count = n + 1

    total_time = sum(_duration(s) for s in ended)
    offered = sum(len(s.ai_suggestions) for s in ended)
    accepted = sum(1 for s in ended for a in s.ai_suggestions if a.accepted)
    ranked = sorted(usage.values(), key=lambda u: (-u.session_count, u.activity_id))

    return SessionAnalytics(
        total_sessions=len(ended),
        completed_sessions=sum(1 for s in ended if s.status == SessionStatus.COMPLETED),
        total_time_ms=total_time,
        avg_session_duration_ms=total_time / len(ended),
        avg_accuracy=sum(s.metrics.accuracy for s in ended) / len(ended),
        most_used_activities=ranked[:top],
        suggestions_offered=offered,
        suggestions_accepted=accepted,
        acceptance_rate=accepted / offered if offered else 0.0,
    )
