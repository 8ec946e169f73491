"""
Contextual insights for a single task.

Builds the hierarchy context of a task (subtasks, microtasks, recent logs,
dependencies) from the submitted records and derives specific, actionable
insights about timing, progress, dependencies and productivity.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .prioritization import get_days_since, parse_timestamp, resolve_now
from .validation import TaskNotFound

logger = logging.getLogger(__name__)

RECENT_LOG_LIMIT = 8
DEFAULT_MIN_CONFIDENCE = 0.6
NO_ACTIVITY_DAYS = 999


@dataclass
class CompletionStatus:
    total_subtasks: int = 0
    completed_subtasks: int = 0
    total_microtasks: int = 0
    completed_microtasks: int = 0
    overall_progress: int = 0

    def to_dict(self) -> Dict:
        return {
            'total_subtasks': self.total_subtasks,
            'completed_subtasks': self.completed_subtasks,
            'total_microtasks': self.total_microtasks,
            'completed_microtasks': self.completed_microtasks,
            'overall_progress': self.overall_progress,
        }


@dataclass
class TaskDependencies:
    """Unfinished tasks this one waits on, and tasks waiting on this one."""
    dependent: List[Dict] = field(default_factory=list)
    blocking: List[Dict] = field(default_factory=list)


@dataclass
class TaskContext:
    main_task: Dict
    subtasks: List[Dict] = field(default_factory=list)
    microtasks: List[Dict] = field(default_factory=list)
    recent_logs: List[Dict] = field(default_factory=list)
    completion_status: CompletionStatus = field(default_factory=CompletionStatus)
    dependencies: TaskDependencies = field(default_factory=TaskDependencies)

    def to_dict(self) -> Dict:
        return {
            'main_task': self.main_task,
            'subtasks': self.subtasks,
            'microtasks': self.microtasks,
            'recent_logs': self.recent_logs,
            'completion_status': self.completion_status.to_dict(),
            'dependencies': {
                'dependent': [t.get('id') for t in self.dependencies.dependent],
                'blocking': [t.get('id') for t in self.dependencies.blocking],
            },
        }


@dataclass
class SpecificInsight:
    type: str
    title: str
    description: str
    actionable: str
    confidence: float
    urgency: str

    def to_dict(self) -> Dict:
        return {
            'type': self.type,
            'title': self.title,
            'description': self.description,
            'actionable': self.actionable,
            'confidence': self.confidence,
            'urgency': self.urgency,
        }


def _percent(part: int, whole: int) -> int:
    """Percentage rounded half up."""
    return int(math.floor(part * 100 / whole + 0.5))


def _log_time(log: Dict) -> float:
    moment = parse_timestamp(log.get('created_at'))
    return moment.timestamp() if moment is not None else float('-inf')


def build_task_context(task_id, tasks: List[Dict], logs: Optional[List[Dict]] = None) -> TaskContext:
    """
    Assemble the context of ``task_id`` from in-memory records.

    Raises:
        TaskNotFound: if no task carries that id
    """
    by_id = {str(t.get('id')): t for t in tasks if t.get('id') is not None}
    main_task = by_id.get(str(task_id))
    if main_task is None:
        raise TaskNotFound(f"Task not found: {task_id}")

    main_id = str(task_id)
    subtasks = [
        t for t in tasks
        if t.get('task_level') == 2 and str(t.get('parent_task_id')) == main_id
    ]
    subtask_ids = {str(t.get('id')) for t in subtasks}
    microtasks = [
        t for t in tasks
        if t.get('task_level') == 3 and str(t.get('parent_task_id')) in subtask_ids
    ]

    task_logs = [log for log in (logs or []) if str(log.get('task_id')) == main_id]
    task_logs.sort(key=_log_time, reverse=True)
    recent_logs = task_logs[:RECENT_LOG_LIMIT]

    completed_subtasks = sum(1 for t in subtasks if t.get('status') == 'completed')
    completed_microtasks = sum(1 for t in microtasks if t.get('status') == 'completed')
    if subtasks:
        progress = _percent(completed_subtasks, len(subtasks))
    elif microtasks:
        progress = _percent(completed_microtasks, len(microtasks))
    else:
        progress = 0

    depends_on = dict.fromkeys(str(d) for d in main_task.get('dependencies') or [])
    dependent = [
        by_id[d] for d in depends_on
        if d in by_id and by_id[d].get('status') != 'completed'
    ]
    blocking = [
        t for t in tasks
        if main_id in {str(d) for d in t.get('dependencies') or []}
    ]

    return TaskContext(
        main_task=main_task,
        subtasks=subtasks,
        microtasks=microtasks,
        recent_logs=recent_logs,
        completion_status=CompletionStatus(
            total_subtasks=len(subtasks),
            completed_subtasks=completed_subtasks,
            total_microtasks=len(microtasks),
            completed_microtasks=completed_microtasks,
            overall_progress=progress,
        ),
        dependencies=TaskDependencies(dependent=dependent, blocking=blocking),
    )


class ContextualInsightGenerator:
    """
    Generates task-specific insights from a TaskContext.

    Each analysis proposes insights with a confidence in [0, 1]; only those
    strictly above ``min_confidence`` are returned.
    """

    def generate_specific_insights(
        self,
        context: TaskContext,
        now: Optional[datetime] = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE
    ) -> List[SpecificInsight]:
        now = resolve_now(now)
        insights = []
        insights.extend(self.analyze_task_timing(context, now))
        insights.extend(self.analyze_progress_patterns(context))
        insights.extend(self.analyze_dependency_impact(context))
        insights.extend(self.analyze_productivity_indicators(context))

        kept = [insight for insight in insights if insight.confidence > min_confidence]
        logger.debug(
            "Task %s: %d insights proposed, %d kept",
            context.main_task.get('id'), len(insights), len(kept)
        )
        return kept

    def analyze_task_timing(self, context: TaskContext, now: datetime) -> List[SpecificInsight]:
        insights = []
        progress = context.completion_status.overall_progress
        days_since_creation = get_days_since(context.main_task.get('created_at'), now)

        if context.recent_logs:
            days_since_activity = get_days_since(context.recent_logs[0].get('created_at'), now)
        else:
            days_since_activity = NO_ACTIVITY_DAYS

        if days_since_creation > 14 and progress < 30:
            insights.append(SpecificInsight(
                type='timing_alert',
                title='Old Task Stalled',
                description=(
                    f"This task was created {days_since_creation} days ago "
                    f"and is only {progress}% complete"
                ),
                actionable='Consider splitting it into smaller tasks or checking it is still a priority',
                confidence=0.9,
                urgency='high'
            ))

        if days_since_activity <= 1 and len(context.recent_logs) >= 2:
            insights.append(SpecificInsight(
                type='momentum_positive',
                title='Productive Momentum',
                description=f"{len(context.recent_logs)} updates in the last few days - good working pace",
                actionable='Keep the current momentum and consider blocking extra time',
                confidence=0.8,
                urgency='low'
            ))

        return insights

    def analyze_progress_patterns(self, context: TaskContext) -> List[SpecificInsight]:
        insights = []
        status = context.completion_status

        if status.total_subtasks > 0 and status.total_microtasks > 0:
            subtask_rate = status.completed_subtasks / status.total_subtasks * 100
            microtask_rate = status.completed_microtasks / status.total_microtasks * 100

            if abs(subtask_rate - microtask_rate) > 30:
                insights.append(SpecificInsight(
                    type='progress_imbalance',
                    title='Unbalanced Execution',
                    description=f"Subtasks: {subtask_rate:.0f}% vs Microtasks: {microtask_rate:.0f}%",
                    actionable=(
                        'Focus on finishing the pending microtasks'
                        if subtask_rate > microtask_rate
                        else 'Split the large subtasks into smaller steps'
                    ),
                    confidence=0.7,
                    urgency='medium'
                ))

        if 0 < status.overall_progress < 25 and not context.recent_logs:
            insights.append(SpecificInsight(
                type='progress_stalled',
                title='Early Progress Stalled',
                description=f"{status.overall_progress}% complete but no recent activity",
                actionable='Identify and resolve the specific blocker preventing progress',
                confidence=0.8,
                urgency='high'
            ))

        return insights

    def analyze_dependency_impact(self, context: TaskContext) -> List[SpecificInsight]:
        insights = []
        dependent = context.dependencies.dependent
        blocking = context.dependencies.blocking

        if dependent and context.completion_status.overall_progress < 10:
            insights.append(SpecificInsight(
                type='dependency_blocking',
                title='Unresolved Critical Dependencies',
                description=f"{len(dependent)} task(s) must be completed before significant progress",
                actionable='Prioritize finishing the dependencies or look for parallel alternatives',
                confidence=0.9,
                urgency='high'
            ))

        if len(blocking) >= 3:
            insights.append(SpecificInsight(
                type='chain_impact',
                title='High Chain Impact',
                description=f"{len(blocking)} tasks are waiting for this one to be completed",
                actionable='This task is critical - consider assigning additional resources',
                confidence=0.8,
                urgency='medium'
            ))

        return insights

    def analyze_productivity_indicators(self, context: TaskContext) -> List[SpecificInsight]:
        insights = []
        logs = context.recent_logs

        if len(logs) >= 5:
            unique_types = len({log.get('log_type') for log in logs})
            if unique_types >= 3:
                insights.append(SpecificInsight(
                    type='activity_fragmented',
                    title='Highly Fragmented Activity',
                    description=f"{len(logs)} updates across {unique_types} different types",
                    actionable='Consider focused work sessions on a single aspect',
                    confidence=0.6,
                    urgency='low'
                ))

        if context.completion_status.total_subtasks > 10 and not context.main_task.get('estimated_duration'):
            insights.append(SpecificInsight(
                type='complexity_underestimated',
                title='Complexity Possibly Underestimated',
                description=f"{context.completion_status.total_subtasks} subtasks suggest high complexity",
                actionable='Estimate the duration and consider splitting into phases or milestones',
                confidence=0.7,
                urgency='medium'
            ))

        return insights
