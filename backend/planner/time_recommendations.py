"""
Recommendations for a specific window of free time.

Given how many minutes the user has, picks up to three open tasks that fit
in that window, preferring what is due today, then overdue work, then work
already in progress, then quick wins or medium-sized tasks depending on the
size of the window.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .prioritization import get_days_overdue, is_due_today, is_overdue, pluralize, resolve_now

logger = logging.getLogger(__name__)

QUICK_WORDS = ('call', 'send', 'review', 'confirm', 'verify', 'email')
LONG_WORDS = ('develop', 'create', 'design', 'implement', 'plan')

MIN_DURATION = 5
MAX_DURATION = 120
QUICK_TASK_MINUTES = 15
MEDIUM_TASK_MINUTES = 60

# (pattern, minutes per unit or fixed minutes)
TIME_PATTERNS = [
    (re.compile(r'(\d+)\s*(?:hours?|hrs?)\b'), 60),
    (re.compile(r'(\d+)\s*(?:minutes?|mins?)\b'), 1),
    (re.compile(r'half\s+an?\s+hour'), 30),
    (re.compile(r'(?:a\s+)?quarter\s+of\s+an?\s+hour'), 15),
]

FREE_TIME_PHRASES = (
    'free time', 'spare time', 'have time', 'got time', 'a few minutes',
    'what should i do', 'what do i do', 'what to work on', 'recommendation',
)


@dataclass
class TimeBasedRecommendation:
    task: Dict
    estimated_duration: int
    urgency_score: int
    specific_reason: str
    action_steps: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'task': self.task,
            'estimated_duration': self.estimated_duration,
            'urgency_score': self.urgency_score,
            'specific_reason': self.specific_reason,
            'action_steps': self.action_steps,
        }


@dataclass
class TaskCategorization:
    due_today: List[Dict] = field(default_factory=list)
    overdue: List[Dict] = field(default_factory=list)
    in_progress: List[Dict] = field(default_factory=list)
    short: List[Dict] = field(default_factory=list)
    medium: List[Dict] = field(default_factory=list)
    long: List[Dict] = field(default_factory=list)


def _is_active(task: Dict) -> bool:
    return task.get('status') not in ('completed', 'cancelled') and not task.get('is_archived')


def _content(task: Dict) -> str:
    return f"{task.get('title', '')} {task.get('description') or ''}".lower()


class TimeBasedRecommendationEngine:

    MAX_RECOMMENDATIONS = 3

    def generate_time_based_recommendations(
        self,
        tasks: List[Dict],
        available_minutes: int,
        now: Optional[datetime] = None
    ) -> List[TimeBasedRecommendation]:
        """
        Recommend at most three tasks that fit in ``available_minutes``.

        Each task is recommended once, under the most urgent category it
        belongs to. Ties keep category order, then input order.
        """
        now = resolve_now(now)
        categories = self.categorize_tasks(tasks, now)
        recommendations = []
        seen = set()

        def add(candidates, urgency_score, reason_for):
            for task in candidates:
                if id(task) in seen:
                    continue
                duration = self.estimate_task_duration(task)
                if duration > available_minutes:
                    continue
                seen.add(id(task))
                recommendations.append(TimeBasedRecommendation(
                    task=task,
                    estimated_duration=duration,
                    urgency_score=urgency_score,
                    specific_reason=reason_for(task),
                    action_steps=self.generate_action_steps(task),
                ))

        add(categories.due_today, 95, lambda t: 'Due today - a good moment to get it done')
        add(
            categories.overdue, 90,
            lambda t: f"Overdue by {pluralize(max(get_days_overdue(t.get('due_date'), now), 1))}"
        )
        add(categories.in_progress, 85, lambda t: 'Already in progress - keep the momentum')

        if available_minutes <= QUICK_TASK_MINUTES:
            add(categories.short, 70, lambda t: f"Quick win that fits in {available_minutes} minutes")
        elif available_minutes <= MEDIUM_TASK_MINUTES:
            add(categories.medium, 75, lambda t: 'Enough time to make real progress')

        recommendations.sort(key=lambda r: r.urgency_score, reverse=True)
        logger.debug(
            "%d tasks fit in %d minutes, returning top %d",
            len(recommendations), available_minutes, self.MAX_RECOMMENDATIONS
        )
        return recommendations[:self.MAX_RECOMMENDATIONS]

    def categorize_tasks(self, tasks: List[Dict], now: Optional[datetime] = None) -> TaskCategorization:
        now = resolve_now(now)
        categories = TaskCategorization()

        for task in tasks:
            if not _is_active(task):
                continue

            due_date = task.get('due_date')
            if is_overdue(due_date, now):
                categories.overdue.append(task)
            elif is_due_today(due_date, now):
                categories.due_today.append(task)

            if task.get('status') == 'in_progress':
                categories.in_progress.append(task)

            duration = self.estimate_task_duration(task)
            if duration <= QUICK_TASK_MINUTES:
                categories.short.append(task)
            elif duration <= MEDIUM_TASK_MINUTES:
                categories.medium.append(task)
            else:
                categories.long.append(task)

        return categories

    @staticmethod
    def estimate_task_duration(task: Dict) -> int:
        """
        Minutes a task is expected to take.

        Uses the estimate, then the recorded actual duration, then a heuristic
        on priority and wording.
        """
        if task.get('estimated_duration'):
            return int(task['estimated_duration'])
        if task.get('actual_duration'):
            return int(task['actual_duration'])

        minutes = 30
        if task.get('priority') == 'high':
            minutes += 20
        elif task.get('priority') == 'low':
            minutes -= 10

        content = _content(task)
        if any(word in content for word in QUICK_WORDS):
            minutes = min(minutes, 15)
        if any(word in content for word in LONG_WORDS):
            minutes += 30

        return max(MIN_DURATION, min(minutes, MAX_DURATION))

    @staticmethod
    def generate_action_steps(task: Dict) -> List[str]:
        content = _content(task)

        if 'send' in content or 'email' in content:
            return ['Draft the message', 'Double-check the recipients', 'Send it and mark the task done']
        if 'call' in content or 'contact' in content:
            return ['Look up the contact details', 'Make the call', 'Write down the outcome']
        if 'review' in content or 'verify' in content:
            return ['Open the document or system', 'Go through it in detail', 'Note your findings']
        return ['Gather what you need', 'Do the main piece of work', 'Check that it is complete']

    @staticmethod
    def detect_time_intention(message: str) -> Dict:
        """
        Look for an amount of free time in a chat message.

        Returns:
            {'has_time_intention': bool, 'minutes': int} with ``minutes`` only
            present when an amount was found.
        """
        text = (message or '').lower()

        for pattern, minutes in TIME_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            if match.groups():
                return {'has_time_intention': True, 'minutes': int(match.group(1)) * minutes}
            return {'has_time_intention': True, 'minutes': minutes}

        return {'has_time_intention': any(phrase in text for phrase in FREE_TIME_PHRASES)}
