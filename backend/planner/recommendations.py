"""
Actionable, workflow-level recommendations.

Where the scorer picks one task, this engine looks at the whole task list
and suggests changes to how the work is organised: clearing an overdue
backlog, limiting work in progress, breaking large tasks down and so on.
Users can rate, implement or dismiss a recommendation; that feedback is
aggregated into effectiveness statistics per recommendation type.

Rules:
------
- overdue_backlog:     any overdue task (critical from 3 tasks)
- wip_overload:        more than 3 tasks in progress
- stale_work:          in-progress tasks untouched for more than 7 days
- upcoming_deadlines:  3 or more tasks due within the next 2 days
- quick_wins:          2 or more pending tasks estimated at 15 min or less
- task_breakdown:      top-level tasks over 2 hours with no subtasks
- missing_estimates:   at least half of the open tasks have no estimate
"""

import hashlib
import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional

from .prioritization import (
    align_to, get_days_since, is_overdue, parse_due_date, pluralize, resolve_now,
)
from .validation import RecommendationNotFound

logger = logging.getLogger(__name__)

URGENCY_RANK = {'critical': 0, 'high': 1, 'medium': 2, 'low': 3}

DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_MAX_RECOMMENDATIONS = 500
DEFAULT_MAX_FEEDBACK = 1000


@dataclass
class ActionableRecommendation:
    id: str
    type: str
    category: str
    title: str
    description: str
    urgency: str
    impact: str
    effort: str
    confidence: float
    estimated_time_to_implement: int
    action_items: List[str] = field(default_factory=list)
    expected_results: List[str] = field(default_factory=list)
    related_task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'type': self.type,
            'category': self.category,
            'title': self.title,
            'description': self.description,
            'urgency': self.urgency,
            'impact': self.impact,
            'effort': self.effort,
            'confidence': self.confidence,
            'estimated_time_to_implement': self.estimated_time_to_implement,
            'action_items': self.action_items,
            'expected_results': self.expected_results,
            'related_task_ids': self.related_task_ids,
        }


@dataclass
class RecommendationFeedback:
    recommendation_id: str
    rating: int
    was_implemented: bool
    user_id: Optional[str] = None
    perceived_value: Optional[str] = None
    improvement_suggestions: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            'recommendation_id': self.recommendation_id,
            'user_id': self.user_id,
            'rating': self.rating,
            'was_implemented': self.was_implemented,
            'perceived_value': self.perceived_value,
            'improvement_suggestions': self.improvement_suggestions,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }


def _is_open(task: Dict) -> bool:
    return task.get('status') not in ('completed', 'cancelled') and not task.get('is_archived')


def _task_ids(tasks: List[Dict]) -> List[str]:
    return [str(t.get('id')) for t in tasks if t.get('id') is not None]


def _titles(tasks: List[Dict], limit: int = 3) -> str:
    titles = [f'"{t.get("title")}"' for t in tasks[:limit]]
    if len(tasks) > limit:
        titles.append(f"and {len(tasks) - limit} more")
    return ', '.join(titles)


class ActionableRecommendationEngine:
    """
    Generates recommendations and keeps the feedback given on them.

    The most recent batch of recommendations is remembered so that feedback
    can only be given on a recommendation the engine actually produced.
    """

    WIP_LIMIT = 3
    STALE_AFTER_DAYS = 7
    UPCOMING_DAYS = 2
    UPCOMING_MIN_TASKS = 3
    QUICK_WIN_MINUTES = 15
    QUICK_WIN_MIN_TASKS = 2
    LARGE_TASK_MINUTES = 120
    MISSING_ESTIMATES_MIN_TASKS = 3

    def __init__(
        self,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS,
        max_feedback: int = DEFAULT_MAX_FEEDBACK
    ):
        self.confidence_threshold = confidence_threshold
        self.max_recommendations = max_recommendations
        # Most recently generated last; the oldest are dropped past the cap.
        self._recommendations: "OrderedDict[str, ActionableRecommendation]" = OrderedDict()
        self._feedback: Deque[RecommendationFeedback] = deque(maxlen=max_feedback)
        self._lock = threading.Lock()

    # ==================== Generation ====================

    def generate_recommendations(
        self,
        tasks: List[Dict],
        now: Optional[datetime] = None
    ) -> List[ActionableRecommendation]:
        now = resolve_now(now)
        open_tasks = [t for t in tasks if _is_open(t)]

        candidates = [
            self._overdue_backlog(open_tasks, now),
            self._wip_overload(open_tasks),
            self._stale_work(open_tasks, now),
            self._upcoming_deadlines(open_tasks, now),
            self._quick_wins(open_tasks),
            self._task_breakdown(open_tasks, tasks),
            self._missing_estimates(open_tasks),
        ]
        recommendations = [
            r for r in candidates
            if r is not None and r.confidence >= self.confidence_threshold
        ]
        recommendations.sort(key=lambda r: (URGENCY_RANK[r.urgency], -r.confidence))

        with self._lock:
            for recommendation in recommendations:
                self._recommendations[recommendation.id] = recommendation
                self._recommendations.move_to_end(recommendation.id)
            while len(self._recommendations) > self.max_recommendations:
                self._recommendations.popitem(last=False)

        logger.info(
            "Generated %d recommendations from %d open tasks",
            len(recommendations), len(open_tasks)
        )
        return recommendations

    @staticmethod
    def _make_id(rec_type: str, tasks: List[Dict]) -> str:
        payload = f"{rec_type}:{','.join(sorted(_task_ids(tasks)))}".encode('utf-8')
        return f"{rec_type}-{hashlib.sha1(payload).hexdigest()[:12]}"

    def _overdue_backlog(self, open_tasks: List[Dict], now: datetime) -> Optional[ActionableRecommendation]:
        overdue = [t for t in open_tasks if is_overdue(t.get('due_date'), now)]
        if not overdue:
            return None

        return ActionableRecommendation(
            id=self._make_id('overdue_backlog', overdue),
            type='overdue_backlog',
            category='prioritization',
            title='Clear your overdue tasks',
            description=f"{pluralize(len(overdue), 'task')} past the due date: {_titles(overdue)}",
            urgency='critical' if len(overdue) >= 3 else 'high',
            impact='high',
            effort='medium',
            confidence=0.95,
            estimated_time_to_implement=min(15 * len(overdue), 120),
            action_items=[
                'Finish or reschedule each overdue task today',
                'Cancel the ones that are no longer relevant',
                'Set realistic due dates for the rest',
            ],
            expected_results=['No overdue work', 'Less pressure from missed deadlines'],
            related_task_ids=_task_ids(overdue),
        )

    def _wip_overload(self, open_tasks: List[Dict]) -> Optional[ActionableRecommendation]:
        in_progress = [t for t in open_tasks if t.get('status') == 'in_progress']
        if len(in_progress) <= self.WIP_LIMIT:
            return None

        return ActionableRecommendation(
            id=self._make_id('wip_overload', in_progress),
            type='wip_overload',
            category='focus',
            title='Limit work in progress',
            description=f"{len(in_progress)} tasks are in progress at the same time",
            urgency='high' if len(in_progress) > 5 else 'medium',
            impact='high',
            effort='low',
            confidence=0.85,
            estimated_time_to_implement=10,
            action_items=[
                f"Pick at most {self.WIP_LIMIT} tasks to keep in progress",
                'Move the others back to pending',
                'Finish one task before starting another',
            ],
            expected_results=['Less context switching', 'Tasks finished sooner'],
            related_task_ids=_task_ids(in_progress),
        )

    def _stale_work(self, open_tasks: List[Dict], now: datetime) -> Optional[ActionableRecommendation]:
        stale = [
            t for t in open_tasks
            if t.get('status') == 'in_progress'
            and get_days_since(t.get('updated_at') or t.get('created_at'), now) > self.STALE_AFTER_DAYS
        ]
        if not stale:
            return None

        return ActionableRecommendation(
            id=self._make_id('stale_work', stale),
            type='stale_work',
            category='workflow',
            title='Revisit stalled tasks',
            description=(
                f"{pluralize(len(stale), 'task')} in progress without updates for more than "
                f"{self.STALE_AFTER_DAYS} days: {_titles(stale)}"
            ),
            urgency='medium',
            impact='medium',
            effort='low',
            confidence=0.8,
            estimated_time_to_implement=5 * len(stale),
            action_items=[
                'Identify what is blocking each task',
                'Split it into a smaller next step or put it back to pending',
            ],
            expected_results=['An accurate picture of active work'],
            related_task_ids=_task_ids(stale),
        )

    def _upcoming_deadlines(self, open_tasks: List[Dict], now: datetime) -> Optional[ActionableRecommendation]:
        today = now.date()
        horizon = today + timedelta(days=self.UPCOMING_DAYS)
        upcoming = []
        for task in open_tasks:
            due = parse_due_date(task.get('due_date'))
            if due is None or is_overdue(due, now):
                continue
            due_day = align_to(due, now).date() if isinstance(due, datetime) else due
            if today <= due_day <= horizon:
                upcoming.append(task)

        if len(upcoming) < self.UPCOMING_MIN_TASKS:
            return None

        return ActionableRecommendation(
            id=self._make_id('upcoming_deadlines', upcoming),
            type='upcoming_deadlines',
            category='planning',
            title='Plan for upcoming deadlines',
            description=f"{len(upcoming)} tasks are due within the next {self.UPCOMING_DAYS} days",
            urgency='high',
            impact='high',
            effort='medium',
            confidence=0.8,
            estimated_time_to_implement=15,
            action_items=[
                'Block time in your calendar for each of them',
                'Start with the one due first',
                'Renegotiate deadlines that cannot be met',
            ],
            expected_results=['Deadlines met without a last-minute rush'],
            related_task_ids=_task_ids(upcoming),
        )

    def _quick_wins(self, open_tasks: List[Dict]) -> Optional[ActionableRecommendation]:
        quick = [
            t for t in open_tasks
            if t.get('status') == 'pending'
            and 0 < (t.get('estimated_duration') or 0) <= self.QUICK_WIN_MINUTES
        ]
        if len(quick) < self.QUICK_WIN_MIN_TASKS:
            return None

        return ActionableRecommendation(
            id=self._make_id('quick_wins', quick),
            type='quick_wins',
            category='productivity',
            title='Batch your quick wins',
            description=f"{len(quick)} pending tasks take {self.QUICK_WIN_MINUTES} minutes or less",
            urgency='low',
            impact='medium',
            effort='low',
            confidence=0.75,
            estimated_time_to_implement=sum(t['estimated_duration'] for t in quick),
            action_items=['Reserve one block of time and go through them in a row'],
            expected_results=['A shorter task list', 'Momentum for larger work'],
            related_task_ids=_task_ids(quick),
        )

    def _task_breakdown(self, open_tasks: List[Dict], all_tasks: List[Dict]) -> Optional[ActionableRecommendation]:
        parents = {str(t.get('parent_task_id')) for t in all_tasks if t.get('parent_task_id') is not None}
        large = [
            t for t in open_tasks
            if t.get('task_level', 1) == 1
            and (t.get('estimated_duration') or 0) > self.LARGE_TASK_MINUTES
            and str(t.get('id')) not in parents
        ]
        if not large:
            return None

        return ActionableRecommendation(
            id=self._make_id('task_breakdown', large),
            type='task_breakdown',
            category='planning',
            title='Break down large tasks',
            description=(
                f"{pluralize(len(large), 'task')} estimated at over {self.LARGE_TASK_MINUTES // 60} hours "
                f"with no subtasks: {_titles(large)}"
            ),
            urgency='medium',
            impact='medium',
            effort='low',
            confidence=0.85,
            estimated_time_to_implement=10 * len(large),
            action_items=[
                'Split each task into subtasks of an hour or less',
                'Give every subtask a clear outcome',
            ],
            expected_results=['Visible progress', 'Easier to start'],
            related_task_ids=_task_ids(large),
        )

    def _missing_estimates(self, open_tasks: List[Dict]) -> Optional[ActionableRecommendation]:
        missing = [t for t in open_tasks if not t.get('estimated_duration')]
        if len(missing) < self.MISSING_ESTIMATES_MIN_TASKS or len(missing) * 2 < len(open_tasks):
            return None

        return ActionableRecommendation(
            id=self._make_id('missing_estimates', missing),
            type='missing_estimates',
            category='planning',
            title='Add time estimates',
            description=f"{len(missing)} of {len(open_tasks)} open tasks have no time estimate",
            urgency='low',
            impact='medium',
            effort='low',
            confidence=0.7,
            estimated_time_to_implement=2 * len(missing),
            action_items=['Estimate each task in minutes, even roughly'],
            expected_results=['Better time-based recommendations', 'More reliable planning'],
            related_task_ids=_task_ids(missing),
        )

    # ==================== Feedback ====================

    def get_recommendation(self, recommendation_id: str) -> ActionableRecommendation:
        with self._lock:
            recommendation = self._recommendations.get(recommendation_id)
        if recommendation is None:
            raise RecommendationNotFound(f"Recommendation not found: {recommendation_id}")
        return recommendation

    def record_feedback(self, feedback: RecommendationFeedback) -> RecommendationFeedback:
        recommendation = self.get_recommendation(feedback.recommendation_id)
        if feedback.timestamp is None:
            feedback.timestamp = resolve_now(None)

        with self._lock:
            self._feedback.append(feedback)
        logger.info(
            "Feedback on %s (%s): rating %d, implemented=%s",
            recommendation.id, recommendation.type, feedback.rating, feedback.was_implemented
        )
        return feedback

    def implement_recommendation(self, recommendation_id: str, user_id: Optional[str] = None) -> RecommendationFeedback:
        return self.record_feedback(RecommendationFeedback(
            recommendation_id=recommendation_id,
            user_id=user_id,
            rating=5,
            was_implemented=True,
            perceived_value='high',
        ))

    def dismiss_recommendation(
        self,
        recommendation_id: str,
        reason: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> RecommendationFeedback:
        feedback = self.record_feedback(RecommendationFeedback(
            recommendation_id=recommendation_id,
            user_id=user_id,
            rating=2,
            was_implemented=False,
            perceived_value='low',
            improvement_suggestions=reason,
        ))
        with self._lock:
            self._recommendations.pop(recommendation_id, None)
        return feedback

    def get_effectiveness_stats(self) -> Dict:
        with self._lock:
            feedback = list(self._feedback)
            types = {rid: rec.type for rid, rec in self._recommendations.items()}

        total = len(feedback)
        by_type: Dict[str, Dict] = {}
        for item in feedback:
            rec_type = types.get(item.recommendation_id) or item.recommendation_id.rsplit('-', 1)[0]
            entry = by_type.setdefault(rec_type, {'count': 0, 'implemented': 0, 'rating_sum': 0})
            entry['count'] += 1
            entry['implemented'] += 1 if item.was_implemented else 0
            entry['rating_sum'] += item.rating

        return {
            'total_feedback': total,
            'average_rating': round(sum(f.rating for f in feedback) / total, 2) if total else 0.0,
            'implementation_rate': (
                round(sum(1 for f in feedback if f.was_implemented) / total * 100, 2) if total else 0.0
            ),
            'by_type': {
                rec_type: {
                    'count': entry['count'],
                    'implemented': entry['implemented'],
                    'average_rating': round(entry['rating_sum'] / entry['count'], 2),
                }
                for rec_type, entry in by_type.items()
            },
        }

    def clear(self) -> None:
        with self._lock:
            self._recommendations.clear()
            self._feedback.clear()
