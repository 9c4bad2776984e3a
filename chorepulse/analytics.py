"""
Family analytics computed from members, tasks and completions.

All day boundaries are UTC days.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from chorepulse.db import TaskCompletionRecord, TaskRecord, UserRecord
from chorepulse.google_calendar import parse_due_time
from chorepulse.timefmt import round_half_up, start_of_utc_day, utc_datetime

DAY = 86400
STREAK_LOOKBACK_DAYS = 365
TREND_DAYS = 30
MINUTES_SAVED_PER_TASK = 5
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class Completion:
    user_id: str
    task_id: str
    completed_at: float
    on_time: bool

    @property
    def day(self) -> date:
        return utc_datetime(self.completed_at).date()


def was_on_time(completed_at: float, due_time: Optional[str]) -> bool:
    """A completion is on time when it lands before the task's due time that day."""
    if not due_time:
        return True
    hour, minute = parse_due_time(due_time)
    due = start_of_utc_day(completed_at) + hour * 3600 + minute * 60
    return completed_at <= due


def current_streak(days: set[date], today: date) -> int:
    """Consecutive days with a completion, counting back from today.

    An empty today does not break the streak; the count starts from yesterday.
    """
    streak = 0
    check = today
    for i in range(STREAK_LOOKBACK_DAYS):
        if check in days:
            streak += 1
        elif i > 0:
            break
        check -= timedelta(days=1)
    return streak


def format_category(category: str) -> str:
    return " ".join(word.capitalize() for word in category.split("_"))


def _time_of_day(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"


def _spread(counts: list[int]) -> float:
    """Sum of absolute deviations from the mean."""
    if not counts:
        return 0.0
    mean = sum(counts) / len(counts)
    return sum(abs(c - mean) for c in counts)


def compute_analytics(
    members: list[UserRecord],
    tasks: list[TaskRecord],
    raw_completions: list[TaskCompletionRecord],
    now: Optional[float] = None,
) -> dict:
    now = time.time() if now is None else now
    today = utc_datetime(now).date()
    task_by_id = {t.id: t for t in tasks}

    completions = [
        Completion(
            user_id=c.user_id,
            task_id=c.task_id,
            completed_at=c.completed_at,
            on_time=was_on_time(
                c.completed_at, task_by_id[c.task_id].due_time if c.task_id in task_by_id else None
            ),
        )
        for c in raw_completions
    ]
    last7 = [c for c in completions if c.completed_at >= now - 7 * DAY]
    last30 = [c for c in completions if c.completed_at >= now - 30 * DAY]

    by_member = {m.id: [c for c in completions if c.user_id == m.id] for m in members}
    total = len(completions)
    total_points = sum(m.points or 0 for m in members)
    on_time = sum(1 for c in completions if c.on_time)
    completion_rate = round_half_up(on_time / total * 100) if total else 0

    streaks = {m.id: current_streak({c.day for c in by_member[m.id]}, today) for m in members}
    longest = max(streaks.values(), default=0)

    day_counts = Counter(c.day for c in completions)
    trends = []
    for offset in range(TREND_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        trends.append({"date": day.isoformat(), "completions": day_counts.get(day, 0)})

    performance = []
    for m in members:
        mine = by_member[m.id]
        performance.append(
            {
                "id": m.id,
                "name": m.name,
                "avatar": m.avatar,
                "color": m.color,
                "tasksCompleted": len(mine),
                "points": m.points or 0,
                "completionRate": round_half_up(sum(1 for c in mine if c.on_time) / len(mine) * 100) if mine else 0,
                "last7Days": sum(1 for c in last7 if c.user_id == m.id),
            }
        )
    performance.sort(key=lambda p: p["points"], reverse=True)

    category_counts = Counter(
        task_by_id[c.task_id].category for c in completions if c.task_id in task_by_id
    )
    by_category = [
        {
            "category": category,
            "count": count,
            "percentage": round_half_up(count / total * 100) if total else 0,
        }
        for category, count in category_counts.most_common()
    ]

    hour_counts = Counter(utc_datetime(c.completed_at).hour for c in completions)
    peak_times = [
        {"hour": hour, "count": count, "label": f"{hour}:00"}
        for hour, count in hour_counts.most_common(5)
    ]

    time_saved = round_half_up(len(last7) * MINUTES_SAVED_PER_TASK / 60, 1)
    proactive_rate = round_half_up(sum(1 for c in last7 if c.on_time) / len(last7) * 100) if last7 else 0
    member_counts = [len(by_member[m.id]) for m in members]
    spread = _spread(member_counts)
    fairness = 100 - min(spread * 2, 50)
    consistency = min(longest * 10, 100)
    harmony = round_half_up(fairness * 0.4 + consistency * 0.3 + completion_rate * 0.3)
    late = total - on_time
    mental_load = max(0, 100 - late * 5)

    window_start = now - 30 * DAY
    first_week = sum(1 for c in completions if window_start <= c.completed_at < window_start + 7 * DAY)
    if first_week:
        growth = round_half_up((len(last7) - first_week) / first_week * 100)
    else:
        growth = 100 if last7 else 0
    velocity = round_half_up(len(last7) / 7, 1)

    alerts = []
    for m in members:
        done_today = any(c.day == today for c in by_member[m.id])
        if streaks[m.id] >= 3 and not done_today:
            alerts.append(
                {
                    "memberId": m.id,
                    "memberName": m.name,
                    "avatar": m.avatar,
                    "color": m.color,
                    "currentStreak": streaks[m.id],
                    "completedToday": done_today,
                    "atRisk": True,
                }
            )

    distribution = []
    for m in members:
        mine = by_member[m.id]
        distribution.append(
            {
                "memberId": m.id,
                "memberName": m.name,
                "avatar": m.avatar,
                "color": m.color,
                "totalCompletions": len(mine),
                "last7Days": sum(1 for c in last7 if c.user_id == m.id),
                "last30Days": sum(1 for c in last30 if c.user_id == m.id),
                "pointsEarned": m.points or 0,
                "averagePointsPerTask": round_half_up((m.points or 0) / len(mine)) if mine else 0,
            }
        )
    distribution_fairness = max(0, 100 - spread * 2)
    is_fair = distribution_fairness >= 70

    patterns = []
    for m in members:
        mine = by_member[m.id]
        if not mine:
            continue
        hours = Counter(utc_datetime(c.completed_at).hour for c in mine)
        weekdays = Counter(utc_datetime(c.completed_at).weekday() for c in mine)
        patterns.append(
            {
                "memberId": m.id,
                "memberName": m.name,
                "avatar": m.avatar,
                "peakHours": [
                    {"hour": h, "count": n, "label": f"{h}:00", "timeOfDay": _time_of_day(h)}
                    for h, n in hours.most_common(3)
                ],
                "bestDays": [
                    {"day": d, "count": n, "dayName": DAY_NAMES[d]}
                    for d, n in weekdays.most_common(2)
                ],
                "totalTasks": len(mine),
            }
        )

    insights = []
    for alert in alerts:
        insights.append(
            {
                "type": "warning",
                "title": "Streak at Risk!",
                "message": f"{alert['memberName']}'s {alert['currentStreak']}-day streak is at risk - no tasks completed today yet!",
            }
        )
    if time_saved > 1:
        insights.append(
            {
                "type": "positive",
                "title": "Time Saved",
                "message": f"Your family saved {time_saved} hours this week by completing tasks proactively!",
            }
        )
    if performance:
        top = performance[0]
        insights.append(
            {
                "type": "celebrate",
                "title": "Top Performer",
                "message": f"{top['name']} is leading the family with {top['points']} points!",
            }
        )
    if not is_fair and len(distribution) > 1:
        most = max(distribution, key=lambda d: d["totalCompletions"])
        least = min(distribution, key=lambda d: d["totalCompletions"])
        if most["totalCompletions"] > least["totalCompletions"] * 2:
            insights.append(
                {
                    "type": "suggestion",
                    "title": "Uneven Distribution",
                    "message": (
                        f"{most['memberName']} has completed {most['totalCompletions']} tasks while "
                        f"{least['memberName']} has {least['totalCompletions']}. Consider balancing assignments."
                    ),
                }
            )
    for pattern in patterns:
        peak = pattern["peakHours"][0]
        insights.append(
            {
                "type": "neutral",
                "title": "Peak Performance",
                "message": f"{pattern['memberName']} completes most tasks in the {peak['timeOfDay']} (around {peak['label']})",
            }
        )
    if proactive_rate > 70:
        insights.append(
            {
                "type": "positive",
                "title": "Growing Independence",
                "message": f"{proactive_rate}% of tasks are being completed on time - your kids are building great habits!",
            }
        )
    if longest >= 7:
        insights.append(
            {
                "type": "celebrate",
                "title": "Consistency Streak",
                "message": f"Amazing! Someone in your family has a {longest}-day streak going!",
            }
        )
    if by_category:
        top_category = by_category[0]
        insights.append(
            {
                "type": "neutral",
                "title": "Category Focus",
                "message": (
                    f"{format_category(top_category['category'])} tasks are getting the most "
                    f"attention with {top_category['count']} completions."
                ),
            }
        )
    if completion_rate < 70:
        insights.append(
            {
                "type": "suggestion",
                "title": "Opportunity",
                "message": f"Try setting reminders earlier in the day to improve your {completion_rate}% on-time completion rate.",
            }
        )

    return {
        "overview": {
            "totalTasksCompleted": total,
            "totalPoints": total_points,
            "completionRate": completion_rate,
            "longestStreak": longest,
        },
        "advancedMetrics": {
            "timeSavedHours": time_saved,
            "independenceIndex": completion_rate,
            "proactiveRate": proactive_rate,
            "familyHarmonyScore": harmony,
            "mentalLoadScore": mental_load,
            "growthRate": growth,
            "achievementVelocity": velocity,
        },
        "completionTrends": trends,
        "memberPerformance": performance,
        "tasksByCategory": by_category,
        "peakTimes": peak_times,
        "insights": insights,
        "streakAlerts": alerts,
        "taskDistribution": distribution,
        "fairnessScore": distribution_fairness,
        "behaviorPatterns": patterns,
    }
