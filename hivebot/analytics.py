from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from .constants import CATEGORY_DISPLAY, TOOL_DISPLAY
from .database import Database
from .models import ResponseFilter, UserRecord, WeeklyResponse


@dataclass(slots=True)
class WeekParticipation:
    week_start_date: date
    total: int
    participated: int

    @property
    def rate(self) -> float:
        return self.participated / self.total if self.total else 0.0


@dataclass(slots=True)
class DashboardStats:
    week_start_date: date
    total_users: int
    active_users: int
    participation_rate: float
    total_responses: int
    this_week_responses: int
    top_categories: list[tuple[str, int]] = field(default_factory=list)
    top_tools: list[tuple[str, int]] = field(default_factory=list)
    recent_responses: list[WeeklyResponse] = field(default_factory=list)


def _ranked(counter: Counter[str]) -> list[tuple[str, int]]:
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))


def category_counts(responses: Iterable[WeeklyResponse]) -> list[tuple[str, int]]:
    counter: Counter[str] = Counter()
    for response in responses:
        if response.participated:
            counter.update(response.categories)
    return _ranked(counter)


def tool_counts(responses: Iterable[WeeklyResponse]) -> list[tuple[str, int]]:
    counter: Counter[str] = Counter()
    for response in responses:
        if response.participated:
            counter.update(response.tools)
            counter.update(response.custom_tools)
    return _ranked(counter)


def participation_by_week(responses: Iterable[WeeklyResponse]) -> list[WeekParticipation]:
    weeks: dict[date, WeekParticipation] = {}
    for response in responses:
        entry = weeks.setdefault(
            response.week_start_date,
            WeekParticipation(week_start_date=response.week_start_date, total=0, participated=0),
        )
        entry.total += 1
        if response.participated:
            entry.participated += 1
    return [weeks[week] for week in sorted(weeks)]


def summarize(
    users: list[UserRecord],
    responses: list[WeeklyResponse],
    week_start: date,
    top_n: int = 5,
    recent_n: int = 10,
) -> DashboardStats:
    """Aggregate users and responses into dashboard numbers.

    ``responses`` is expected newest first, as returned by the repository.
    The participation rate is this week's responses over active users.
    """
    active_users = sum(1 for u in users if u.is_active and not u.opt_out)
    this_week = [r for r in responses if r.week_start_date == week_start]

    return DashboardStats(
        week_start_date=week_start,
        total_users=len(users),
        active_users=active_users,
        participation_rate=len(this_week) / active_users if active_users else 0.0,
        total_responses=len(responses),
        this_week_responses=len(this_week),
        top_categories=category_counts(responses)[:top_n],
        top_tools=tool_counts(responses)[:top_n],
        recent_responses=responses[:recent_n],
    )


def build_dashboard_stats(repository: Database, week_start: date) -> DashboardStats:
    return summarize(repository.list_users(), repository.find_responses(ResponseFilter()), week_start)


def format_stats(stats: DashboardStats) -> str:
    lines = [
        f"📊 Hive stats for the week of {stats.week_start_date.isoformat()}",
        "",
        f"Users: {stats.total_users} total, {stats.active_users} active",
        f"This week: {stats.this_week_responses} responses ({stats.participation_rate:.0%} of active users)",
        f"All time: {stats.total_responses} responses",
        "",
        "Top categories:",
    ]
    if stats.top_categories:
        lines.extend(f"- {CATEGORY_DISPLAY.get(c, c)}: {n}" for c, n in stats.top_categories)
    else:
        lines.append("- none yet")

    lines.append("")
    lines.append("Top tools:")
    if stats.top_tools:
        lines.extend(f"- {TOOL_DISPLAY.get(t, t)}: {n}" for t, n in stats.top_tools)
    else:
        lines.append("- none yet")

    return "\n".join(lines)
