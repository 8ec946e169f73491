"""
Summary of the user's situation handed to the planning assistant.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from .prioritization import align_to, parse_timestamp, resolve_now

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {'urgent': 4, 'high': 3, 'medium': 2, 'low': 1}

MAX_RECENT_TASKS = 10
MAX_RECENT_PROJECTS = 5


def get_time_of_day(now: datetime) -> str:
    hour = now.hour
    if 6 <= hour < 12:
        return 'morning'
    elif 12 <= hour < 18:
        return 'afternoon'
    elif 18 <= hour < 22:
        return 'evening'
    return 'night'


def get_work_pattern(completed_today: int) -> str:
    if completed_today >= 5:
        return 'productive'
    elif completed_today >= 3:
        return 'moderate'
    elif completed_today >= 1:
        return 'low'
    return 'inactive'


def _timestamp_key(value, now: datetime) -> float:
    moment = parse_timestamp(value)
    if moment is None:
        return float('-inf')
    return align_to(moment, now).timestamp()


def build_assistant_context(
    user_id: str,
    tasks: List[Dict],
    projects: Optional[List[Dict]] = None,
    now: Optional[datetime] = None,
    max_recent_tasks: int = MAX_RECENT_TASKS,
    max_recent_projects: int = MAX_RECENT_PROJECTS
) -> Dict:
    """
    Build the assistant context for ``user_id``.

    Only top-level tasks are summarized. Recent tasks are ordered by priority
    then most recently updated; recent projects are the active ones with the
    most progress.
    """
    now = resolve_now(now)
    projects = projects or []
    main_tasks = [t for t in tasks if t.get('task_level', 1) == 1 and not t.get('is_archived')]

    completed = [t for t in main_tasks if t.get('status') == 'completed']
    completed_today = 0
    for task in completed:
        completed_at = parse_timestamp(task.get('completed_at'))
        if completed_at is not None and align_to(completed_at, now).date() == now.date():
            completed_today += 1

    last_update = None
    updates = [parse_timestamp(t.get('updated_at')) for t in main_tasks]
    updates = [align_to(u, now) for u in updates if u is not None]
    if updates:
        last_update = max(updates).isoformat()

    recent_tasks = sorted(
        main_tasks,
        key=lambda t: (PRIORITY_ORDER.get(t.get('priority'), 1), _timestamp_key(t.get('updated_at'), now)),
        reverse=True
    )[:max_recent_tasks]

    active_projects = [p for p in projects if (p.get('status') or 'active') == 'active']
    recent_projects = sorted(
        active_projects,
        key=lambda p: (p.get('progress') or 0, _timestamp_key(p.get('updated_at'), now)),
        reverse=True
    )[:max_recent_projects]

    context = {
        'user_id': user_id,
        'time_of_day': get_time_of_day(now),
        'day_of_week': now.strftime('%A'),
        'is_weekend': now.weekday() >= 5,
        'total_tasks': len(main_tasks),
        'completed_tasks': len(completed),
        'pending_tasks': sum(1 for t in main_tasks if t.get('status') in ('pending', 'in_progress')),
        'active_projects': len(active_projects),
        'recent_completions': completed_today,
        'last_task_update': last_update,
        'work_pattern': get_work_pattern(completed_today),
        'recent_tasks': [
            {
                'id': t.get('id'),
                'title': t.get('title'),
                'status': t.get('status'),
                'priority': t.get('priority'),
                'updated_at': t.get('updated_at'),
            }
            for t in recent_tasks
        ],
        'recent_projects': [
            {
                'id': p.get('id'),
                'name': p.get('name'),
                'status': p.get('status') or 'active',
                'progress': p.get('progress') or 0,
            }
            for p in recent_projects
        ],
    }
    logger.debug(
        "Assistant context for %s: %d tasks, pattern %s",
        user_id, len(main_tasks), context['work_pattern']
    )
    return context
