"""
Context-aware task scoring with TTL memoization.

Unlike the "what to do now" scorer, this score is normalized to 0-100 and
blends task urgency with the user's working context: preferred hours,
energy level, favourite tags, momentum and recent successes. Scores and
messages are memoized so that repeated renders of the planner do not
recompute them.
"""

import json
import logging
import math
from datetime import datetime
from typing import Dict, Optional

from .cache import TTLCache
from .prioritization import align_to, resolve_now, parse_due_date

logger = logging.getLogger(__name__)

SCORE_TTL_SECONDS = 60
MESSAGE_TTL_SECONDS = 5 * 60

BASE_SCORE = 50


def get_time_context(now: Optional[datetime] = None) -> Dict:
    """
    Describe the current part of the day and the focus it suits.

    Returns:
        dict with time_of_day, energy_level, suggested_max_minutes and message
    """
    hour = resolve_now(now).hour

    if 5 <= hour < 9:
        return {
            'time_of_day': 'early_morning',
            'energy_level': 'high',
            'suggested_max_minutes': 120,
            'message': 'Early morning - great time for complex, high-focus tasks!'
        }
    elif 9 <= hour < 12:
        return {
            'time_of_day': 'morning',
            'energy_level': 'high',
            'suggested_max_minutes': 90,
            'message': 'Peak productivity hours - tackle your most important work!'
        }
    elif 12 <= hour < 14:
        return {
            'time_of_day': 'midday',
            'energy_level': 'medium',
            'suggested_max_minutes': 60,
            'message': 'Post-lunch period - good for moderate complexity tasks.'
        }
    elif 14 <= hour < 18:
        return {
            'time_of_day': 'afternoon',
            'energy_level': 'medium',
            'suggested_max_minutes': 60,
            'message': 'Afternoon focus - balance important and quick-win tasks.'
        }
    elif 18 <= hour < 22:
        return {
            'time_of_day': 'evening',
            'energy_level': 'low',
            'suggested_max_minutes': 30,
            'message': 'Evening hours - focus on lighter tasks or wrap-up work.'
        }
    else:
        return {
            'time_of_day': 'night',
            'energy_level': 'low',
            'suggested_max_minutes': 15,
            'message': 'Late night - consider resting! Only urgent items if needed.'
        }


def _score_key(task: Dict, context: Dict, now: datetime) -> str:
    # Every field the score reads; client ids are not unique across requests.
    fields = {
        'id': task.get('id'),
        'priority': task.get('priority'),
        'due_date': task.get('due_date'),
        'status': task.get('status'),
        'tags': sorted(str(tag) for tag in task.get('tags') or []),
        'context': context,
        'date': now.date(),
        'hour': now.hour,
    }
    return f"task-score-{json.dumps(fields, sort_keys=True, default=str)}"


def _message_time_of_day(hour: int) -> str:
    if hour < 12:
        return 'morning'
    elif hour < 18:
        return 'afternoon'
    return 'evening'


def _days_until_due(due_date, now: datetime) -> Optional[int]:
    due = parse_due_date(due_date)
    if due is None:
        return None
    if not isinstance(due, datetime):
        due = datetime(due.year, due.month, due.day)
    seconds = (align_to(due, now) - now).total_seconds()
    return math.ceil(seconds / 86400)


class ContextualTaskScorer:
    """
    Memoized 0-100 score of how well a task fits the current context.

    Context keys (all optional):
        preferred_hours: hours of the day (0-23) the user works best
        energy_level: 'high' | 'medium' | 'low'
        preferred_tags: tags the user tends to complete
        recent_success_tasks: ids of tasks recently completed successfully
    """

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        score_ttl: float = SCORE_TTL_SECONDS,
        message_ttl: float = MESSAGE_TTL_SECONDS
    ):
        self.cache = cache if cache is not None else TTLCache()
        self.score_ttl = score_ttl
        self.message_ttl = message_ttl

    def calculate_task_score(
        self,
        task: Dict,
        context: Dict,
        now: Optional[datetime] = None
    ) -> int:
        now = resolve_now(now)
        key = _score_key(task, context, now)
        return self.cache.memoize_with_ttl(
            key,
            lambda: self._compute_score(task, context, now),
            self.score_ttl
        )

    def _compute_score(self, task: Dict, context: Dict, now: datetime) -> int:
        score = BASE_SCORE

        # Urgency
        if task.get('priority') == 'high':
            score += 20
        elif task.get('priority') == 'medium':
            score += 10

        days_until_due = _days_until_due(task.get('due_date'), now)
        if days_until_due is not None:
            if days_until_due <= 1:
                score += 25
            elif days_until_due <= 3:
                score += 15
            elif days_until_due <= 7:
                score += 5

        # Time-of-day fit
        hour = now.hour
        if hour in (context.get('preferred_hours') or []):
            score += 15
        if context.get('energy_level') == 'high' and 9 <= hour <= 11:
            score += 10

        # User patterns
        preferred_tags = set(context.get('preferred_tags') or [])
        if preferred_tags.intersection(task.get('tags') or []):
            score += 12

        # Momentum
        if task.get('status') == 'in_progress':
            score += 15

        # Learning
        recent_success = {str(i) for i in context.get('recent_success_tasks') or []}
        if task.get('id') is not None and str(task.get('id')) in recent_success:
            score += 8

        return min(max(score, 0), 100)

    def generate_contextual_message(
        self,
        task: Dict,
        score: int,
        now: Optional[datetime] = None
    ) -> str:
        now = resolve_now(now)
        title = task.get('title', 'this task')
        time_of_day = _message_time_of_day(now.hour)
        key = f"context-message-{json.dumps([title, score, time_of_day])}"
        return self.cache.memoize_with_ttl(
            key,
            lambda: self._compose_message(title, score, time_of_day),
            self.message_ttl
        )

    @staticmethod
    def _compose_message(title: str, score: int, time_of_day: str) -> str:
        if score > 80:
            return f'Perfect moment for "{title}". Your energy and current context are aligned.'
        if score > 60:
            return f'Good option for this {time_of_day}. "{title}" fits your current rhythm.'
        return f'Consider "{title}" when you have a moment. It is an important task on your list.'

    def score_tasks(self, tasks, context: Dict, now: Optional[datetime] = None):
        """Score and describe every task, best first (stable on ties)."""
        now = resolve_now(now)
        results = []
        for task in tasks:
            score = self.calculate_task_score(task, context, now)
            results.append({
                'task': task,
                'score': score,
                'message': self.generate_contextual_message(task, score, now),
            })
        results.sort(key=lambda r: r['score'], reverse=True)
        logger.debug("Scored %d tasks in context; cache %s", len(results), self.cache.stats())
        return results
