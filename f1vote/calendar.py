"""Race calendar helpers: status, countdowns and vote locks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

# FP1 is shown as starting this long before the race itself.
FP1_LEAD = timedelta(hours=48)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def race_status(race: Dict, races: Iterable[Dict], now: datetime) -> str:
    """Return ``completed``, ``active``, ``upcoming`` or ``future``.

    ``active`` means the start has passed but results are not in yet;
    ``upcoming`` is the first unfinished race still ahead.
    """
    if race.get("completed"):
        return "completed"
    if _aware(race["date"]) < now:
        return "active"
    nxt = next((r for r in races if not r.get("completed") and _aware(r["date"]) > now), None)
    if nxt is not None and nxt.get("round") == race.get("round"):
        return "upcoming"
    return "future"


def next_round(races: List[Dict], now: datetime) -> int:
    """Round of the first race still ahead, else the last round, else 1."""
    for race in races:
        if _aware(race["date"]) > now:
            return int(race["round"])
    if races:
        return int(races[-1]["round"])
    return 1


def countdown(target: datetime, now: datetime) -> Optional[Dict[str, str]]:
    """Compact countdown text to ``target``; None once it has passed."""
    total_seconds = int((_aware(target) - now).total_seconds())
    if total_seconds < 0:
        return None
    seconds = total_seconds % 60
    total_minutes = total_seconds // 60
    minutes = total_minutes % 60
    total_hours = total_minutes // 60
    hours = total_hours % 24
    days = total_hours // 24

    if total_seconds < 60:
        return {"text": f"{total_seconds}s", "type": "urgent"}
    if days == 0 and hours == 0:
        return {"text": f"{minutes}m {seconds}s", "type": "seconds"}
    if days == 0:
        return {"text": f"{hours}h {minutes}m", "type": "hours"}
    if days < 7:
        return {"text": f"{days}d {hours}h", "type": "days"}
    return {"text": f"{days}d", "type": "days"}


def fp1_start(race: Dict) -> datetime:
    return _aware(race["date"]) - FP1_LEAD


def is_race_locked(race: Dict, now: datetime) -> bool:
    """Ballots close when the race starts or once results are published."""
    return bool(race.get("completed")) or _aware(race["date"]) <= now


def is_season_locked(lock_at: datetime, now: datetime) -> bool:
    return now > _aware(lock_at)
