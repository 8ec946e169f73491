"""
Productivity aggregates over a reporting period.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from .prioritization import align_to, parse_timestamp, resolve_now

logger = logging.getLogger(__name__)

PERIODS = {
    'week': relativedelta(weeks=1),
    'month': relativedelta(months=1),
    'quarter': relativedelta(months=3),
    'year': relativedelta(years=1),
}

MAX_EFFICIENCY = 200.0
TREND_THRESHOLD = 10.0


@dataclass
class ProductivityMetrics:
    total_tasks: int
    completed_tasks: int
    completion_rate: float
    total_work_time: int
    average_task_time: float
    efficiency: float
    productivity: float
    trend: str
    previous_period_comparison: float
    has_session_data: bool

    def to_dict(self) -> Dict:
        return {
            'total_tasks': self.total_tasks,
            'completed_tasks': self.completed_tasks,
            'completion_rate': round(self.completion_rate, 2),
            'total_work_time': self.total_work_time,
            'average_task_time': round(self.average_task_time, 2),
            'efficiency': round(self.efficiency, 2),
            'productivity': round(self.productivity, 2),
            'trend': self.trend,
            'previous_period_comparison': round(self.previous_period_comparison, 2),
            'has_session_data': self.has_session_data,
        }


def get_date_range(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime, datetime]:
    """
    Start of the current and previous window for ``period``.

    Returns:
        Tuple of (start_date, previous_start_date, now)

    Raises:
        ValueError: for an unknown period
    """
    if period not in PERIODS:
        raise ValueError(f"Period must be one of {', '.join(PERIODS)}")
    now = resolve_now(now)
    start_date = now - PERIODS[period]
    previous_start_date = start_date - PERIODS[period]
    return start_date, previous_start_date, now


def calculate_productivity_metrics(
    tasks: List[Dict],
    sessions: List[Dict],
    completed_tasks: List[Dict],
    previous_completed_tasks: List[Dict]
) -> ProductivityMetrics:
    total_tasks = len(tasks)
    completed_count = len(completed_tasks)
    has_session_data = len(sessions) > 0

    completion_rate = completed_count / total_tasks * 100 if total_tasks else 0.0
    total_work_time = sum(s.get('duration_minutes') or 0 for s in sessions)
    average_task_time = total_work_time / completed_count if completed_count and has_session_data else 0.0

    # Efficiency: how close estimates were to reality, over tasks with both
    estimated = [
        t for t in completed_tasks
        if (t.get('estimated_duration') or 0) > 0 and (t.get('actual_duration') or 0) > 0
    ]
    if estimated:
        ratio = sum(t['estimated_duration'] / t['actual_duration'] for t in estimated) / len(estimated)
        efficiency = min(ratio * 100, MAX_EFFICIENCY)
    else:
        efficiency = 0.0

    rated = [s for s in sessions if (s.get('productivity_score') or 0) > 0]
    productivity = sum(s['productivity_score'] for s in rated) / len(rated) if rated else 0.0

    previous_count = len(previous_completed_tasks)
    if previous_count:
        comparison = (completed_count - previous_count) / previous_count * 100
    else:
        comparison = 100.0 if completed_count else 0.0

    if comparison > TREND_THRESHOLD:
        trend = 'up'
    elif comparison < -TREND_THRESHOLD:
        trend = 'down'
    else:
        trend = 'stable'

    return ProductivityMetrics(
        total_tasks=total_tasks,
        completed_tasks=completed_count,
        completion_rate=completion_rate,
        total_work_time=total_work_time,
        average_task_time=average_task_time,
        efficiency=efficiency,
        productivity=productivity,
        trend=trend,
        previous_period_comparison=comparison,
        has_session_data=has_session_data,
    )


def _in_window(value, start: datetime, end: datetime) -> bool:
    moment = parse_timestamp(value)
    if moment is None:
        return False
    moment = align_to(moment, end)
    return start <= moment < end


def productivity_for_period(
    tasks: List[Dict],
    sessions: List[Dict],
    period: str,
    now: Optional[datetime] = None
) -> ProductivityMetrics:
    """
    Metrics for the last ``period``, compared against the one before it.

    Tasks count as completed in a window by ``completed_at`` (falling back to
    ``updated_at``); sessions by ``started_at``.
    """
    start, previous_start, now = get_date_range(period, now)
    # Include "now" itself in the current window
    end = now + relativedelta(microseconds=1)

    completed = [t for t in tasks if t.get('status') == 'completed']
    current = [t for t in completed if _in_window(t.get('completed_at') or t.get('updated_at'), start, end)]
    previous = [
        t for t in completed
        if _in_window(t.get('completed_at') or t.get('updated_at'), previous_start, start)
    ]
    period_sessions = [s for s in sessions if _in_window(s.get('started_at'), start, end)]

    metrics = calculate_productivity_metrics(tasks, period_sessions, current, previous)
    logger.debug(
        "Productivity for %s: %d completed (%d previously), trend %s",
        period, metrics.completed_tasks, len(previous), metrics.trend
    )
    return metrics
