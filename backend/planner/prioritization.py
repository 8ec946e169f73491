"""
Task Recommendation Scorer for the Smart Planner.

This module decides which single task the user should work on right now.
It is a deterministic, additive scoring function over an already-fetched list
of task records.

Scoring Rules:
-------------
- Overdue tasks:        +1000 (short-circuits, highest possible priority)
- Due today:            +500  (short-circuits)
- Due tomorrow:         +300
- Already in progress:  +200  (momentum bonus)
- Manual priority:      urgent +200, high +150, medium +100, low +50
- Staleness:            +1 per day without updates after 3 days, capped at 30

Ties are broken by insertion order (stable sort).
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

from dateutil.parser import isoparse

logger = logging.getLogger(__name__)

DueDate = Union[date, datetime]

TASK_STATUSES = ('pending', 'in_progress', 'completed', 'cancelled')
TASK_PRIORITIES = ('low', 'medium', 'high', 'urgent')
TASK_LEVELS = (1, 2, 3)

PRIORITY_WEIGHTS = {
    'urgent': 200,
    'high': 150,
    'medium': 100,
    'low': 50,
}

PRIORITY_REASONS = {
    'urgent': '🔥 Urgent priority',
    'high': '⭐ High priority',
    'medium': '📋 Medium priority',
}


@dataclass
class TaskRecommendation:
    """A task selected by the scorer, with the reason it was picked."""
    task: Dict
    reason: str
    score: int

    def to_dict(self) -> Dict:
        return {
            'task': self.task,
            'reason': self.reason,
            'score': self.score,
        }


# ==================== Date helpers ====================

def parse_due_date(value) -> Optional[DueDate]:
    """
    Parse a due date that may be a date, a datetime or an ISO string.

    Date-only strings (YYYY-MM-DD) stay dates so that "due today" means the
    whole calendar day rather than midnight.
    """
    if value is None or value == '':
        return None
    if isinstance(value, (date, datetime)):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Unsupported due date type: {type(value).__name__}")

    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return isoparse(text)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a created/updated timestamp; date-only values become midnight."""
    parsed = parse_due_date(value)
    if parsed is None or isinstance(parsed, datetime):
        return parsed
    return datetime(parsed.year, parsed.month, parsed.day)


def align_to(moment: datetime, now: datetime) -> datetime:
    """Bring ``moment`` into the same timezone awareness as ``now``."""
    if now.tzinfo is not None:
        if moment.tzinfo is None:
            return moment.replace(tzinfo=now.tzinfo)
        return moment.astimezone(now.tzinfo)
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def _local_date(due: DueDate, now: datetime) -> date:
    if isinstance(due, datetime):
        return align_to(due, now).date()
    return due


def resolve_now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now().astimezone()


def is_overdue(due_date, now: Optional[datetime] = None) -> bool:
    """True when the due date has already passed."""
    due = parse_due_date(due_date)
    if due is None:
        return False
    now = resolve_now(now)
    if isinstance(due, datetime):
        return align_to(due, now) < now
    return due < now.date()


def is_due_today(due_date, now: Optional[datetime] = None) -> bool:
    due = parse_due_date(due_date)
    if due is None:
        return False
    now = resolve_now(now)
    return _local_date(due, now) == now.date()


def is_due_tomorrow(due_date, now: Optional[datetime] = None) -> bool:
    due = parse_due_date(due_date)
    if due is None:
        return False
    now = resolve_now(now)
    return _local_date(due, now) == now.date() + timedelta(days=1)


def get_days_overdue(due_date, now: Optional[datetime] = None) -> int:
    """
    Number of days a task is late.

    Whole calendar days for date-only values, rounded-up 24h periods for
    datetimes. Never negative.
    """
    due = parse_due_date(due_date)
    if due is None:
        return 0
    now = resolve_now(now)
    if isinstance(due, datetime):
        elapsed = (now - align_to(due, now)).total_seconds()
        return max(0, math.ceil(elapsed / 86400))
    return max(0, (now.date() - due).days)


def get_days_since(timestamp, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since ``timestamp`` (floored, never negative)."""
    moment = parse_timestamp(timestamp)
    if moment is None:
        return 0
    now = resolve_now(now)
    elapsed = (now - align_to(moment, now)).total_seconds()
    return max(0, math.floor(elapsed / 86400))


def pluralize(count: int, word: str = 'day') -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


# ==================== Scorer ====================

class TaskRecommendationScorer:
    """
    Scores open tasks and picks the best one to work on now.

    Used by the Smart Planner "what to do now" feature. All methods accept an
    explicit ``now`` so callers (and tests) control the clock.
    """

    OVERDUE_BONUS = 1000
    DUE_TODAY_BONUS = 500
    DUE_TOMORROW_BONUS = 300
    IN_PROGRESS_BONUS = 200
    DEFAULT_PRIORITY_BONUS = 100

    # Staleness: tasks untouched for more than STALE_AFTER_DAYS earn one
    # point per day, up to MAX_STALENESS_BONUS.
    STALE_AFTER_DAYS = 3
    MAX_STALENESS_BONUS = 30

    CLOSED_STATUSES = frozenset({'completed', 'cancelled'})

    def is_candidate(self, task: Dict, excluded_ids: Iterable = ()) -> bool:
        """A task can be recommended if it is open, not archived and not skipped."""
        if task.get('status') in self.CLOSED_STATUSES:
            return False
        if task.get('is_archived'):
            return False
        task_id = task.get('id')
        if task_id is None:
            return True
        excluded = {str(i) for i in excluded_ids}
        return str(task_id) not in excluded

    def calculate_task_score(
        self,
        task: Dict,
        now: Optional[datetime] = None
    ) -> Tuple[int, str]:
        """
        Calculate the additive priority score and the headline reason.

        Returns:
            Tuple of (score, reason)
        """
        now = resolve_now(now)
        due_date = task.get('due_date')
        score = 0
        reason = ''

        if is_overdue(due_date, now):
            days = max(get_days_overdue(due_date, now), 1)
            return (self.OVERDUE_BONUS, f"⚠️ Overdue by {pluralize(days)}")

        if is_due_today(due_date, now):
            return (self.DUE_TODAY_BONUS, '📅 Due today')

        if is_due_tomorrow(due_date, now):
            score += self.DUE_TOMORROW_BONUS
            reason = '📅 Due tomorrow'

        if task.get('status') == 'in_progress':
            score += self.IN_PROGRESS_BONUS
            if not reason:
                reason = '▶️ In progress'

        priority = task.get('priority')
        score += PRIORITY_WEIGHTS.get(priority, self.DEFAULT_PRIORITY_BONUS)

        days_idle = get_days_since(task.get('updated_at') or task.get('created_at'), now)
        if days_idle > self.STALE_AFTER_DAYS:
            score += min(days_idle, self.MAX_STALENESS_BONUS)
            if not reason:
                reason = f"⏰ Untouched for {pluralize(days_idle)}"

        if not reason:
            reason = PRIORITY_REASONS.get(priority, '📋 Next on your list')

        return (score, reason)

    def rank_tasks(
        self,
        tasks: List[Dict],
        excluded_ids: Iterable = (),
        now: Optional[datetime] = None
    ) -> List[TaskRecommendation]:
        """
        Score every candidate task and sort them, best first.

        Python's sort is stable, so equal scores keep their input order.
        """
        now = resolve_now(now)
        excluded = list(excluded_ids)
        ranked = []
        for task in tasks:
            if not self.is_candidate(task, excluded):
                continue
            score, reason = self.calculate_task_score(task, now)
            ranked.append(TaskRecommendation(task=task, reason=reason, score=score))

        ranked.sort(key=lambda r: r.score, reverse=True)
        return ranked

    def select_best_task(
        self,
        tasks: List[Dict],
        excluded_ids: Iterable = (),
        now: Optional[datetime] = None
    ) -> Optional[TaskRecommendation]:
        """Return the top recommendation, or None when nothing is left."""
        ranked = self.rank_tasks(tasks, excluded_ids, now)
        if not ranked:
            logger.debug("No candidate tasks among %d submitted", len(tasks))
            return None
        best = ranked[0]
        logger.debug(
            "Selected task %s with score %d out of %d candidates",
            best.task.get('id'), best.score, len(ranked)
        )
        return best


default_scorer = TaskRecommendationScorer()


def select_best_task(
    tasks: List[Dict],
    excluded_ids: Iterable = (),
    now: Optional[datetime] = None
) -> Optional[TaskRecommendation]:
    """Module-level shortcut for ``TaskRecommendationScorer.select_best_task``."""
    return default_scorer.select_best_task(tasks, excluded_ids, now)


def rank_tasks(
    tasks: List[Dict],
    excluded_ids: Iterable = (),
    now: Optional[datetime] = None
) -> List[TaskRecommendation]:
    return default_scorer.rank_tasks(tasks, excluded_ids, now)
