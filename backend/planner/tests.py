"""
Unit Tests for the Smart Planner.

This module covers the "what to do now" scorer, the caches, the contextual
scorer, task insights, time-window and actionable recommendations, the
productivity aggregates and the API endpoints.
"""

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status
from datetime import date, datetime, timedelta, timezone as dt_timezone
from itertools import product
import json

from . import views
from .analytics import calculate_productivity_metrics, get_date_range, productivity_for_period
from .cache import ContextCache, TTLCache, measure_performance
from .context import build_assistant_context, get_work_pattern
from .contextual_scoring import ContextualTaskScorer, get_time_context
from .insights import ContextualInsightGenerator, build_task_context
from .prioritization import (
    TaskRecommendationScorer,
    get_days_overdue,
    is_due_today,
    is_due_tomorrow,
    is_overdue,
    parse_due_date,
    rank_tasks,
    select_best_task,
)
from .recommendations import ActionableRecommendationEngine
from .time_recommendations import TimeBasedRecommendationEngine
from .validation import ErrorCode, RecommendationNotFound, TaskNotFound, validate_tasks

# Wednesday, 10:00 UTC
NOW = datetime(2024, 6, 12, 10, 0, tzinfo=dt_timezone.utc)
TODAY = NOW.date()


def days_from_now(days: int) -> str:
    return (TODAY + timedelta(days=days)).isoformat()


def moment(**delta) -> str:
    return (NOW - timedelta(**delta)).isoformat()


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DueDateHelperTests(TestCase):
    """Tests for due date parsing and comparisons."""

    def test_date_only_string_stays_a_date(self):
        """A YYYY-MM-DD value should parse to a date, not a datetime."""
        parsed = parse_due_date('2024-06-12')
        self.assertEqual(parsed, date(2024, 6, 12))
        self.assertNotIsInstance(parsed, datetime)

    def test_datetime_string_parses_with_timezone(self):
        """ISO datetimes should keep their offset."""
        parsed = parse_due_date('2024-06-12T08:30:00+02:00')
        self.assertIsInstance(parsed, datetime)
        self.assertEqual(parsed.utcoffset(), timedelta(hours=2))

    def test_empty_values_mean_no_due_date(self):
        """None and empty strings should mean the task has no due date."""
        self.assertIsNone(parse_due_date(None))
        self.assertIsNone(parse_due_date(''))

    def test_invalid_values_raise(self):
        """Garbage strings and unsupported types should raise."""
        with self.assertRaises(ValueError):
            parse_due_date('next tuesday')
        with self.assertRaises(TypeError):
            parse_due_date(20240612)

    def test_date_due_today_is_not_overdue(self):
        """A date-only due date is overdue only from the next day on."""
        self.assertFalse(is_overdue(days_from_now(0), NOW))
        self.assertTrue(is_due_today(days_from_now(0), NOW))
        self.assertTrue(is_overdue(days_from_now(-1), NOW))

    def test_datetime_in_the_past_is_overdue(self):
        """A datetime earlier today is already overdue."""
        self.assertTrue(is_overdue(moment(hours=1), NOW))

    def test_due_tomorrow(self):
        """Tomorrow's date should be detected for both dates and datetimes."""
        self.assertTrue(is_due_tomorrow(days_from_now(1), NOW))
        self.assertTrue(is_due_tomorrow((NOW + timedelta(days=1)).isoformat(), NOW))
        self.assertFalse(is_due_tomorrow(days_from_now(2), NOW))

    def test_days_overdue(self):
        """Dates count calendar days, datetimes round up 24h periods."""
        self.assertEqual(get_days_overdue(days_from_now(-3), NOW), 3)
        self.assertEqual(get_days_overdue(moment(hours=25), NOW), 2)
        self.assertEqual(get_days_overdue(days_from_now(5), NOW), 0)


class TaskRecommendationScorerTests(TestCase):
    """Tests for the what-to-do-now scoring rules."""

    def setUp(self):
        self.scorer = TaskRecommendationScorer()

    def score(self, **task):
        task.setdefault('title', 'Task')
        task.setdefault('status', 'pending')
        return self.scorer.calculate_task_score(task, NOW)

    def test_overdue_short_circuits(self):
        """Overdue tasks score exactly 1000, whatever else they have."""
        score, reason = self.score(due_date=days_from_now(-2), priority='urgent', status='in_progress')
        self.assertEqual(score, 1000)
        self.assertEqual(reason, '⚠️ Overdue by 2 days')

    def test_overdue_by_one_day_is_singular(self):
        """The reason should read '1 day', not '1 days'."""
        _, reason = self.score(due_date=days_from_now(-1))
        self.assertEqual(reason, '⚠️ Overdue by 1 day')

    def test_due_today_short_circuits(self):
        """Tasks due today score exactly 500."""
        self.assertEqual(self.score(due_date=days_from_now(0), priority='urgent'), (500, '📅 Due today'))

    def test_due_tomorrow_adds_up(self):
        """Due tomorrow stacks with momentum and priority."""
        score, reason = self.score(due_date=days_from_now(1), status='in_progress', priority='high')
        self.assertEqual(score, 300 + 200 + 150)
        self.assertEqual(reason, '📅 Due tomorrow')

    def test_in_progress_momentum(self):
        """In-progress tasks get the momentum bonus and reason."""
        self.assertEqual(self.score(status='in_progress', priority='medium'), (300, '▶️ In progress'))

    def test_priority_weights(self):
        """Manual priority adds its weight; unknown priority counts as 100."""
        self.assertEqual(self.score(priority='urgent')[0], 200)
        self.assertEqual(self.score(priority='high'), (150, '⭐ High priority'))
        self.assertEqual(self.score(priority='low'), (50, '📋 Next on your list'))
        self.assertEqual(self.score()[0], 100)

    def test_staleness_bonus(self):
        """Tasks untouched for more than 3 days earn a point per day."""
        score, reason = self.score(priority='low', updated_at=moment(days=10))
        self.assertEqual(score, 60)
        self.assertEqual(reason, '⏰ Untouched for 10 days')

    def test_staleness_threshold_and_cap(self):
        """No bonus at 3 days; the bonus is capped at 30."""
        self.assertEqual(self.score(priority='low', updated_at=moment(days=3))[0], 50)
        self.assertEqual(self.score(priority='low', updated_at=moment(days=60))[0], 80)

    def test_staleness_falls_back_to_created_at(self):
        """Without updated_at the creation time is used."""
        self.assertEqual(self.score(priority='low', created_at=moment(days=5))[0], 55)

    def test_raising_priority_never_lowers_the_score(self):
        """Medium to urgent never lowers the score of a non-overdue task."""
        for due_tomorrow, in_progress, stale in product([False, True], repeat=3):
            fields = {}
            if due_tomorrow:
                fields['due_date'] = days_from_now(1)
            if in_progress:
                fields['status'] = 'in_progress'
            if stale:
                fields['updated_at'] = moment(days=10)
            with self.subTest(due_tomorrow=due_tomorrow, in_progress=in_progress, stale=stale):
                medium, _ = self.score(priority='medium', **fields)
                urgent, _ = self.score(priority='urgent', **fields)
                self.assertGreaterEqual(urgent, medium)

    def test_overdue_beats_everything_else(self):
        """An overdue low-priority task wins over any non-overdue task."""
        tasks = [
            {'id': '1', 'title': 'Urgent', 'status': 'in_progress', 'priority': 'urgent', 'due_date': days_from_now(1)},
            {'id': '2', 'title': 'Late', 'status': 'pending', 'priority': 'low', 'due_date': days_from_now(-1)},
        ]
        best = select_best_task(tasks, now=NOW)
        self.assertEqual(best.task['id'], '2')
        self.assertEqual(best.score, 1000)

    def test_closed_and_archived_tasks_are_never_picked(self):
        """Completed, cancelled and archived tasks are not candidates."""
        tasks = [
            {'id': '1', 'title': 'Done', 'status': 'completed', 'due_date': days_from_now(-5)},
            {'id': '2', 'title': 'Dropped', 'status': 'cancelled', 'due_date': days_from_now(-5)},
            {'id': '3', 'title': 'Archived', 'status': 'pending', 'is_archived': True},
        ]
        self.assertIsNone(select_best_task(tasks, now=NOW))

    def test_empty_list_returns_none(self):
        """No tasks means no recommendation."""
        self.assertIsNone(select_best_task([], now=NOW))

    def test_excluded_ids_are_skipped(self):
        """Excluded ids match whether given as strings or numbers."""
        tasks = [
            {'id': 1, 'title': 'Skip me', 'status': 'pending', 'due_date': days_from_now(0)},
            {'id': 2, 'title': 'Pick me', 'status': 'pending'},
        ]
        best = select_best_task(tasks, excluded_ids=['1'], now=NOW)
        self.assertEqual(best.task['id'], 2)

    def test_ties_keep_input_order(self):
        """Equal scores are ranked in the order the tasks were given."""
        tasks = [{'id': str(i), 'title': f'Task {i}', 'status': 'pending'} for i in range(5)]
        ranked = rank_tasks(tasks, now=NOW)
        self.assertEqual([r.task['id'] for r in ranked], ['0', '1', '2', '3', '4'])

    def test_result_is_deterministic(self):
        """The same input at the same time gives the same answer."""
        tasks = [
            {'id': '1', 'title': 'A', 'status': 'pending', 'priority': 'high'},
            {'id': '2', 'title': 'B', 'status': 'in_progress'},
            {'id': '3', 'title': 'C', 'status': 'pending', 'due_date': days_from_now(1)},
        ]
        first = select_best_task(tasks, now=NOW)
        second = select_best_task(tasks, now=NOW)
        self.assertEqual(first.to_dict(), second.to_dict())
        self.assertEqual(first.task['id'], '3')


class ValidationTests(TestCase):
    """Tests for the cross-record checks."""

    def test_empty_list_is_valid(self):
        """An empty task list has nothing wrong with it."""
        self.assertEqual(validate_tasks([]), [])

    def test_duplicate_ids(self):
        """Two tasks with the same id are reported."""
        errors = validate_tasks([
            {'id': '1', 'title': 'A'},
            {'id': 1, 'title': 'B'},
        ])
        self.assertEqual([e.code for e in errors], [ErrorCode.ERR_DUPLICATE_ID])

    def test_self_parent(self):
        """A task cannot be its own parent."""
        errors = validate_tasks([{'id': '1', 'title': 'A', 'parent_task_id': '1'}])
        self.assertEqual(errors[0].code, ErrorCode.ERR_SELF_PARENT)
        self.assertEqual(errors[0].to_dict()['field'], 'parent_task_id')

    def test_field_checks(self):
        """Missing title, bad status, priority, level and date are reported."""
        errors = validate_tasks([{
            'id': '1', 'title': ' ', 'status': 'done', 'priority': 'critical',
            'task_level': 4, 'due_date': 'soon',
        }])
        self.assertEqual(
            [e.code for e in errors],
            [
                ErrorCode.ERR_MISSING_FIELD,
                ErrorCode.ERR_INVALID_STATUS,
                ErrorCode.ERR_INVALID_PRIORITY,
                ErrorCode.ERR_INVALID_TASK_LEVEL,
                ErrorCode.ERR_INVALID_DATE,
            ]
        )


class TTLCacheTests(TestCase):
    """Tests for TTL memoization."""

    def setUp(self):
        self.clock = FakeClock()
        self.cache = TTLCache(clock=self.clock)
        self.calls = 0

    def compute(self):
        self.calls += 1
        return self.calls

    def test_value_is_served_until_ttl(self):
        """The cached value is reused until the TTL has elapsed."""
        self.assertEqual(self.cache.memoize_with_ttl('k', self.compute, ttl=60), 1)
        self.clock.advance(59)
        self.assertEqual(self.cache.memoize_with_ttl('k', self.compute, ttl=60), 1)
        self.clock.advance(1)
        self.assertEqual(self.cache.memoize_with_ttl('k', self.compute, ttl=60), 2)

    def test_clean_expired_cache(self):
        """Only entries whose age reached their TTL are removed."""
        self.cache.memoize_with_ttl('short', self.compute, ttl=10)
        self.cache.memoize_with_ttl('long', self.compute, ttl=100)
        self.clock.advance(10)

        self.assertEqual(self.cache.clean_expired_cache(), 1)
        self.assertNotIn('short', self.cache)
        self.assertIn('long', self.cache)

    def test_entry_count_is_bounded(self):
        """Past max_entries the oldest entry is evicted."""
        cache = TTLCache(max_entries=3, clock=self.clock)
        for i in range(10):
            cache.memoize_with_ttl(str(i), self.compute, ttl=600)
            self.clock.advance(1)

        self.assertEqual(len(cache), 3)
        self.assertNotIn('0', cache)
        self.assertIn('9', cache)

    def test_expired_entries_are_swept_lazily(self):
        """A store after the cleanup interval drops expired entries."""
        cache = TTLCache(cleanup_interval=60, clock=self.clock)
        cache.memoize_with_ttl('short', self.compute, ttl=10)
        self.clock.advance(30)
        cache.memoize_with_ttl('other', self.compute, ttl=600)
        self.assertEqual(len(cache), 2)

        self.clock.advance(30)
        cache.memoize_with_ttl('late', self.compute, ttl=600)
        self.assertEqual(len(cache), 2)
        self.assertNotIn('short', cache)

    def test_stats(self):
        """Hits and misses are counted."""
        self.cache.memoize_with_ttl('k', self.compute)
        self.cache.memoize_with_ttl('k', self.compute)
        stats = self.cache.stats()
        self.assertEqual((stats['hits'], stats['misses']), (1, 1))
        self.assertEqual(stats['hit_rate'], 50.0)

    def test_slow_operations_are_logged(self):
        """measure_performance warns when the threshold is exceeded."""
        ticks = iter([0.0, 0.5])
        with self.assertLogs('planner.cache', level='WARNING') as logs:
            result = measure_performance('slow thing', lambda: 42, threshold_ms=100, clock=lambda: next(ticks))
        self.assertEqual(result, 42)
        self.assertIn('slow thing took 500.00ms', logs.output[0])


class ContextCacheTests(TestCase):
    """Tests for the per-user assistant context cache."""

    def setUp(self):
        self.clock = FakeClock()
        self.cache = ContextCache(max_entries=2, default_ttl=300, cleanup_interval=60, clock=self.clock)

    def context(self, user_id='u1', **overrides):
        context = {
            'user_id': user_id,
            'recent_tasks': [{'id': '1'}],
            'recent_projects': [],
            'last_task_update': '2024-06-12T09:00:00+00:00',
            'work_pattern': 'low',
            'time_of_day': 'morning',
        }
        context.update(overrides)
        return context

    def test_set_and_get(self):
        """A stored context is returned and counted as a hit."""
        self.cache.set('u1', self.context())
        entry = self.cache.get('u1')
        self.assertEqual(entry.context['user_id'], 'u1')
        self.assertEqual(entry.hits, 1)
        self.assertIsNone(self.cache.get('u2'))
        self.assertEqual(self.cache.get_stats().hit_rate, 50.0)

    def test_entries_expire(self):
        """Entries are gone once their TTL has passed."""
        self.cache.set('u1', self.context())
        self.clock.advance(301)
        self.assertIsNone(self.cache.get('u1'))

    def test_explicit_zero_ttl_is_honoured(self):
        """ttl=0 is not replaced by the default TTL."""
        self.cache.set('u1', self.context(), ttl=0)
        self.clock.advance(1)
        self.assertIsNone(self.cache.get('u1'))

    def test_unchanged_context_only_extends_expiry(self):
        """Re-storing the same context keeps the entry and pushes its expiry."""
        self.cache.set('u1', self.context())
        self.clock.advance(200)
        self.cache.set('u1', self.context())
        self.clock.advance(200)

        entry = self.cache.get('u1')
        self.assertIsNotNone(entry)
        self.assertEqual(entry.timestamp, 0)

    def test_oldest_entry_is_evicted_when_full(self):
        """At capacity, the entry with the oldest timestamp makes room."""
        self.cache.set('u1', self.context('u1'))
        self.clock.advance(1)
        self.cache.set('u2', self.context('u2'))
        self.clock.advance(1)
        self.cache.set('u3', self.context('u3'))

        self.assertEqual(len(self.cache), 2)
        self.assertFalse(self.cache.has('u1'))
        self.assertTrue(self.cache.has('u3'))

    def test_has_changed(self):
        """A change in a fingerprinted field is detected."""
        self.cache.set('u1', self.context())
        self.assertFalse(self.cache.has_changed('u1', self.context()))
        self.assertTrue(self.cache.has_changed('u1', self.context(work_pattern='productive')))
        self.assertTrue(self.cache.has_changed('u2', self.context('u2')))

    def test_get_with_fallback_builds_once(self):
        """The fallback runs on a miss only."""
        calls = []

        def build():
            calls.append(1)
            return self.context()

        self.cache.get_with_fallback('u1', build)
        self.cache.get_with_fallback('u1', build)
        self.assertEqual(len(calls), 1)

    def test_invalidate(self):
        """Invalidation drops one context type or all of a user's entries."""
        self.cache.set('u1', self.context(), context_type='chat')
        self.cache.set('u1', self.context(), context_type='planner')
        self.assertEqual(self.cache.invalidate('u1', 'chat'), 1)
        self.assertEqual(self.cache.invalidate('u1'), 1)
        self.assertEqual(len(self.cache), 0)

    def test_cleanup_removes_expired_entries(self):
        """cleanup() sweeps expired entries and logs the count."""
        self.cache.set('u1', self.context())
        self.clock.advance(400)
        with self.assertLogs('planner.cache', level='INFO'):
            self.assertEqual(self.cache.cleanup(), 1)


class ContextualScoringTests(TestCase):
    """Tests for the 0-100 contextual score."""

    def setUp(self):
        self.clock = FakeClock()
        self.scorer = ContextualTaskScorer(cache=TTLCache(clock=self.clock))

    def test_base_score(self):
        """A medium task with no context scores 60."""
        task = {'id': '1', 'title': 'Task', 'priority': 'medium', 'status': 'pending'}
        self.assertEqual(self.scorer.calculate_task_score(task, {}, NOW), 60)

    def test_due_soon_bonus(self):
        """Due in under 3 days adds 15."""
        task = {'id': '1', 'title': 'Task', 'priority': 'medium', 'due_date': days_from_now(3)}
        self.assertEqual(self.scorer.calculate_task_score(task, {}, NOW), 75)

    def test_score_is_clamped(self):
        """Every bonus at once still caps at 100."""
        task = {
            'id': '1', 'title': 'Task', 'priority': 'high', 'status': 'in_progress',
            'due_date': days_from_now(0), 'tags': ['writing'],
        }
        context = {
            'preferred_hours': [10], 'energy_level': 'high',
            'preferred_tags': ['writing'], 'recent_success_tasks': ['1'],
        }
        self.assertEqual(self.scorer.calculate_task_score(task, context, NOW), 100)

    def test_scores_are_memoized_for_a_minute(self):
        """An identical task and context reuse the score until the TTL."""
        task = {'id': '1', 'title': 'Task', 'priority': 'low'}
        self.scorer.calculate_task_score(task, {}, NOW)
        self.scorer.calculate_task_score(dict(task), {}, NOW)
        self.assertEqual(self.scorer.cache.stats()['hits'], 1)

        self.clock.advance(60)
        self.assertEqual(self.scorer.calculate_task_score(task, {}, NOW), 50)
        self.assertEqual(self.scorer.cache.stats()['misses'], 2)

    def test_same_id_with_different_fields_is_rescored(self):
        """A different task reusing an id does not get the cached score."""
        first = {'id': '1', 'title': 'Task', 'priority': 'low'}
        second = {'id': '1', 'title': 'Other', 'priority': 'high', 'status': 'in_progress'}
        self.assertEqual(self.scorer.calculate_task_score(first, {}, NOW), 50)
        self.assertEqual(self.scorer.calculate_task_score(second, {}, NOW), 85)

    def test_messages_are_keyed_by_title(self):
        """Two tasks with the same id and score get their own titles."""
        first = self.scorer.generate_contextual_message({'id': '1', 'title': 'Alpha'}, 50, NOW)
        second = self.scorer.generate_contextual_message({'id': '1', 'title': 'Beta'}, 50, NOW)
        self.assertIn('"Alpha"', first)
        self.assertIn('"Beta"', second)
        self.assertNotIn('Alpha', second)

    def test_messages(self):
        """The message depends on the score band and time of day."""
        task = {'id': '1', 'title': 'Report'}
        self.assertTrue(self.scorer.generate_contextual_message(task, 85, NOW).startswith('Perfect moment'))
        self.assertIn('this morning', self.scorer.generate_contextual_message(task, 70, NOW))
        self.assertTrue(self.scorer.generate_contextual_message(task, 50, NOW).startswith('Consider'))

    def test_score_tasks_sorted(self):
        """score_tasks returns the best fit first."""
        tasks = [
            {'id': '1', 'title': 'Low', 'priority': 'low'},
            {'id': '2', 'title': 'High', 'priority': 'high'},
        ]
        results = self.scorer.score_tasks(tasks, {}, NOW)
        self.assertEqual([r['task']['id'] for r in results], ['2', '1'])

    def test_time_context_windows(self):
        """Each hour maps to its part of the day."""
        expected = {
            6: 'early_morning', 10: 'morning', 13: 'midday',
            15: 'afternoon', 19: 'evening', 23: 'night', 3: 'night',
        }
        for hour, time_of_day in expected.items():
            with self.subTest(hour=hour):
                self.assertEqual(get_time_context(NOW.replace(hour=hour))['time_of_day'], time_of_day)


class InsightTests(TestCase):
    """Tests for task context and specific insights."""

    def setUp(self):
        self.generator = ContextualInsightGenerator()

    def main_task(self, **fields):
        task = {'id': '1', 'title': 'Launch site', 'status': 'in_progress', 'task_level': 1,
                'created_at': moment(days=2), 'estimated_duration': 240}
        task.update(fields)
        return task

    def subtasks(self, count, completed=0, parent='1', start=100):
        return [
            {'id': str(start + i), 'title': f'Subtask {i}', 'task_level': 2, 'parent_task_id': parent,
             'status': 'completed' if i < completed else 'pending'}
            for i in range(count)
        ]

    def logs(self, count, types=('progress',), **age):
        return [
            {'id': str(i), 'task_id': '1', 'log_type': types[i % len(types)],
             'created_at': (NOW - timedelta(**age) - timedelta(minutes=i)).isoformat()}
            for i in range(count)
        ]

    def insight_types(self, tasks, logs=(), **kwargs):
        context = build_task_context('1', tasks, list(logs))
        return [i.type for i in self.generator.generate_specific_insights(context, NOW, **kwargs)]

    def test_hierarchy_and_progress(self):
        """Subtasks, their microtasks and progress are collected."""
        subtasks = self.subtasks(2, completed=1)
        microtasks = [
            {'id': '200', 'title': 'Micro', 'task_level': 3, 'parent_task_id': '100', 'status': 'pending'},
            {'id': '201', 'title': 'Unrelated', 'task_level': 3, 'parent_task_id': '999', 'status': 'pending'},
        ]
        context = build_task_context('1', [self.main_task()] + subtasks + microtasks)

        self.assertEqual([t['id'] for t in context.subtasks], ['100', '101'])
        self.assertEqual([t['id'] for t in context.microtasks], ['200'])
        self.assertEqual(context.completion_status.overall_progress, 50)

    def test_progress_rounds_half_up(self):
        """1 of 8 subtasks completed is 13%."""
        context = build_task_context('1', [self.main_task()] + self.subtasks(8, completed=1))
        self.assertEqual(context.completion_status.overall_progress, 13)

    def test_recent_logs_are_limited_and_sorted(self):
        """Only the 8 newest logs are kept, newest first."""
        logs = list(reversed(self.logs(10, hours=1)))
        context = build_task_context('1', [self.main_task()], logs)
        self.assertEqual(len(context.recent_logs), 8)
        self.assertEqual(context.recent_logs[0]['id'], '0')

    def test_unknown_task(self):
        """An unknown id raises TaskNotFound."""
        with self.assertRaises(TaskNotFound):
            build_task_context('404', [self.main_task()])

    def test_dependencies(self):
        """Unfinished prerequisites are dependent; tasks waiting on this one are blocking."""
        tasks = [
            self.main_task(dependencies=['9', '10']),
            {'id': '9', 'title': 'Prereq', 'status': 'pending'},
            {'id': '10', 'title': 'Done prereq', 'status': 'completed'},
        ] + [
            {'id': str(20 + i), 'title': f'Waiting {i}', 'status': 'pending', 'dependencies': ['1']}
            for i in range(3)
        ]
        context = build_task_context('1', tasks)
        self.assertEqual([t['id'] for t in context.dependencies.dependent], ['9'])
        self.assertEqual(len(context.dependencies.blocking), 3)

        types = self.insight_types(tasks)
        self.assertIn('dependency_blocking', types)
        self.assertIn('chain_impact', types)

    def test_dependent_tasks_keep_input_order(self):
        """Prerequisites are listed in the order given, once each."""
        tasks = [
            self.main_task(dependencies=['12', '9', '12', '30']),
            {'id': '9', 'title': 'Second', 'status': 'pending'},
            {'id': '12', 'title': 'First', 'status': 'in_progress'},
            {'id': '30', 'title': 'Third', 'status': 'pending'},
        ]
        context = build_task_context('1', tasks)
        self.assertEqual([t['id'] for t in context.dependencies.dependent], ['12', '9', '30'])

    def test_old_stalled_task(self):
        """Old tasks with little progress raise a timing alert."""
        types = self.insight_types([self.main_task(created_at=moment(days=20))])
        self.assertIn('timing_alert', types)

    def test_momentum(self):
        """Two or more updates in the last day show momentum."""
        types = self.insight_types([self.main_task()], self.logs(2, hours=2))
        self.assertIn('momentum_positive', types)

    def test_progress_imbalance(self):
        """Subtask and microtask completion far apart is flagged."""
        subtasks = self.subtasks(2, completed=1)
        microtasks = [
            {'id': '200', 'title': 'Micro', 'task_level': 3, 'parent_task_id': '100', 'status': 'pending'},
        ]
        context = build_task_context('1', [self.main_task()] + subtasks + microtasks)
        insights = self.generator.generate_specific_insights(context, NOW)
        imbalance = [i for i in insights if i.type == 'progress_imbalance'][0]
        self.assertEqual(imbalance.actionable, 'Focus on finishing the pending microtasks')

    def test_stalled_early_progress(self):
        """Some progress but no recent activity is flagged."""
        types = self.insight_types([self.main_task()] + self.subtasks(5, completed=1))
        self.assertIn('progress_stalled', types)

    def test_complexity_without_estimate(self):
        """More than 10 subtasks and no estimate suggests underestimation."""
        tasks = [self.main_task(estimated_duration=None)] + self.subtasks(11)
        self.assertIn('complexity_underestimated', self.insight_types(tasks))

    def test_confidence_threshold_is_exclusive(self):
        """Fragmented activity (0.6) is hidden at the default threshold only."""
        tasks = [self.main_task()]
        logs = self.logs(6, types=('progress', 'note', 'blocker'), hours=30)
        self.assertNotIn('activity_fragmented', self.insight_types(tasks, logs))
        self.assertIn('activity_fragmented', self.insight_types(tasks, logs, min_confidence=0.5))


class TimeBasedRecommendationTests(TestCase):
    """Tests for recommendations that fit a time window."""

    def setUp(self):
        self.engine = TimeBasedRecommendationEngine()

    def test_duration_estimate_sources(self):
        """The estimate wins, then the actual duration."""
        self.assertEqual(self.engine.estimate_task_duration({'title': 'x', 'estimated_duration': 40}), 40)
        self.assertEqual(self.engine.estimate_task_duration({'title': 'x', 'actual_duration': 25}), 25)

    def test_duration_heuristics(self):
        """Priority and wording adjust the 30 minute default."""
        estimate = self.engine.estimate_task_duration
        self.assertEqual(estimate({'title': 'Misc', 'priority': 'medium'}), 30)
        self.assertEqual(estimate({'title': 'Misc', 'priority': 'low'}), 20)
        self.assertEqual(estimate({'title': 'Call the bank', 'priority': 'high'}), 15)
        self.assertEqual(estimate({'title': 'Design landing page', 'priority': 'high'}), 80)

    def test_each_task_recommended_once(self):
        """A task due today and in progress appears once, as due today."""
        tasks = [{'id': '1', 'title': 'Misc', 'status': 'in_progress', 'due_date': days_from_now(0),
                  'estimated_duration': 20}]
        recommendations = self.engine.generate_time_based_recommendations(tasks, 30, NOW)
        self.assertEqual(len(recommendations), 1)
        self.assertEqual(recommendations[0].urgency_score, 95)

    def test_urgency_order_and_limit(self):
        """Due today, overdue, in progress, then size-based picks; top 3 only."""
        tasks = [
            {'id': '1', 'title': 'Medium', 'status': 'pending', 'estimated_duration': 30},
            {'id': '2', 'title': 'Going', 'status': 'in_progress', 'estimated_duration': 30},
            {'id': '3', 'title': 'Late', 'status': 'pending', 'due_date': days_from_now(-2),
             'estimated_duration': 30},
            {'id': '4', 'title': 'Today', 'status': 'pending', 'due_date': days_from_now(0),
             'estimated_duration': 30},
        ]
        recommendations = self.engine.generate_time_based_recommendations(tasks, 45, NOW)
        self.assertEqual([r.task['id'] for r in recommendations], ['4', '3', '2'])
        self.assertEqual(recommendations[1].specific_reason, 'Overdue by 2 days')

    def test_tasks_longer_than_window_are_skipped(self):
        """Nothing longer than the available time is suggested."""
        tasks = [{'id': '1', 'title': 'Big', 'status': 'in_progress', 'estimated_duration': 90}]
        self.assertEqual(self.engine.generate_time_based_recommendations(tasks, 30, NOW), [])

    def test_quick_wins_for_short_windows(self):
        """With 15 minutes or less, short tasks score 70."""
        tasks = [
            {'id': '1', 'title': 'Send invoice', 'status': 'pending'},
            {'id': '2', 'title': 'Done', 'status': 'completed', 'estimated_duration': 5},
        ]
        recommendations = self.engine.generate_time_based_recommendations(tasks, 15, NOW)
        self.assertEqual([(r.task['id'], r.urgency_score) for r in recommendations], [('1', 70)])
        self.assertEqual(recommendations[0].action_steps[0], 'Draft the message')

    def test_medium_tasks_for_an_hour(self):
        """With up to an hour, medium tasks score 75."""
        tasks = [{'id': '1', 'title': 'Misc', 'status': 'pending', 'estimated_duration': 40}]
        recommendations = self.engine.generate_time_based_recommendations(tasks, 60, NOW)
        self.assertEqual(recommendations[0].urgency_score, 75)

    def test_detect_time_intention(self):
        """Amounts of time are extracted from chat messages."""
        detect = self.engine.detect_time_intention
        self.assertEqual(detect('I have 20 minutes'), {'has_time_intention': True, 'minutes': 20})
        self.assertEqual(detect('got 2 hours today')['minutes'], 120)
        self.assertEqual(detect('Half an hour before lunch')['minutes'], 30)
        self.assertEqual(detect('a quarter of an hour')['minutes'], 15)
        self.assertEqual(detect('45 min')['minutes'], 45)
        self.assertEqual(detect('I have some free time'), {'has_time_intention': True})
        self.assertEqual(detect('hello there'), {'has_time_intention': False})


class ActionableRecommendationTests(TestCase):
    """Tests for workflow recommendations and their feedback."""

    def setUp(self):
        self.engine = ActionableRecommendationEngine()

    def types(self, tasks, engine=None):
        return [r.type for r in (engine or self.engine).generate_recommendations(tasks, NOW)]

    def overdue(self, count):
        return [
            {'id': str(i), 'title': f'Late {i}', 'status': 'pending', 'due_date': days_from_now(-1),
             'estimated_duration': 30}
            for i in range(count)
        ]

    def test_overdue_backlog_urgency(self):
        """Three overdue tasks are critical, fewer are high."""
        critical = self.engine.generate_recommendations(self.overdue(3), NOW)[0]
        self.assertEqual((critical.type, critical.urgency), ('overdue_backlog', 'critical'))
        self.assertEqual(critical.related_task_ids, ['0', '1', '2'])

        high = self.engine.generate_recommendations(self.overdue(1), NOW)[0]
        self.assertEqual(high.urgency, 'high')

    def test_work_in_progress_limit(self):
        """More than three tasks in progress is flagged."""
        def in_progress(count):
            return [{'id': str(i), 'title': f'T{i}', 'status': 'in_progress', 'estimated_duration': 30}
                    for i in range(count)]

        self.assertNotIn('wip_overload', self.types(in_progress(3)))
        self.assertIn('wip_overload', self.types(in_progress(4)))

    def test_stale_in_progress_work(self):
        """In-progress tasks untouched for over a week are flagged."""
        tasks = [{'id': '1', 'title': 'Old', 'status': 'in_progress', 'updated_at': moment(days=8),
                  'estimated_duration': 30}]
        self.assertIn('stale_work', self.types(tasks))

    def test_large_task_breakdown(self):
        """Tasks over two hours without subtasks should be broken down."""
        big = {'id': '1', 'title': 'Big', 'status': 'pending', 'estimated_duration': 180}
        self.assertIn('task_breakdown', self.types([big]))

        subtask = {'id': '2', 'title': 'Part', 'status': 'pending', 'task_level': 2,
                   'parent_task_id': '1', 'estimated_duration': 60}
        self.assertNotIn('task_breakdown', self.types([big, subtask]))

    def test_missing_estimates_at_threshold(self):
        """Missing estimates (confidence 0.7) pass the default threshold."""
        tasks = [{'id': str(i), 'title': f'T{i}', 'status': 'pending'} for i in range(3)]
        self.assertEqual(self.types(tasks), ['missing_estimates'])

    def test_ordering_and_threshold(self):
        """Results are ordered by urgency; a higher threshold filters."""
        tasks = self.overdue(1) + [
            {'id': str(10 + i), 'title': f'Quick {i}', 'status': 'pending', 'estimated_duration': 10}
            for i in range(2)
        ]
        self.assertEqual(self.types(tasks), ['overdue_backlog', 'quick_wins'])

        strict = ActionableRecommendationEngine(confidence_threshold=0.9)
        self.assertEqual(self.types(tasks, strict), ['overdue_backlog'])

    def test_ids_are_deterministic(self):
        """The same tasks produce the same recommendation ids."""
        first = [r.id for r in self.engine.generate_recommendations(self.overdue(2), NOW)]
        second = [r.id for r in ActionableRecommendationEngine().generate_recommendations(self.overdue(2), NOW)]
        self.assertEqual(first, second)

    def test_feedback_and_effectiveness(self):
        """Implementing and dismissing feed the effectiveness statistics."""
        tasks = self.overdue(1) + [
            {'id': str(10 + i), 'title': f'Quick {i}', 'status': 'pending', 'estimated_duration': 10}
            for i in range(2)
        ]
        overdue, quick = self.engine.generate_recommendations(tasks, NOW)

        implemented = self.engine.implement_recommendation(overdue.id)
        dismissed = self.engine.dismiss_recommendation(quick.id, reason='Not now')
        self.assertEqual((implemented.rating, implemented.was_implemented), (5, True))
        self.assertEqual((dismissed.rating, dismissed.improvement_suggestions), (2, 'Not now'))

        stats = self.engine.get_effectiveness_stats()
        self.assertEqual(stats['total_feedback'], 2)
        self.assertEqual(stats['average_rating'], 3.5)
        self.assertEqual(stats['implementation_rate'], 50.0)
        self.assertEqual(stats['by_type']['quick_wins']['average_rating'], 2)

    def test_stores_are_bounded(self):
        """Only the newest recommendations and feedback are kept."""
        engine = ActionableRecommendationEngine(max_recommendations=2, max_feedback=3)
        oldest = engine.generate_recommendations(self.overdue(1), NOW)[0].id
        engine.generate_recommendations(self.overdue(2), NOW)
        newest = engine.generate_recommendations(self.overdue(3), NOW)[0].id

        with self.assertRaises(RecommendationNotFound):
            engine.get_recommendation(oldest)

        for _ in range(5):
            engine.implement_recommendation(newest)
        self.assertEqual(engine.get_effectiveness_stats()['total_feedback'], 3)

    def test_unknown_recommendation(self):
        """Feedback on an unknown id raises RecommendationNotFound."""
        with self.assertRaises(RecommendationNotFound):
            self.engine.implement_recommendation('nope')


class AnalyticsTests(TestCase):
    """Tests for the productivity aggregates."""

    def test_date_ranges(self):
        """Each period gives the current and previous window start."""
        start, previous, now = get_date_range('week', NOW)
        self.assertEqual(start, NOW - timedelta(days=7))
        self.assertEqual(previous, NOW - timedelta(days=14))
        self.assertEqual(now, NOW)

        start, previous, _ = get_date_range('quarter', NOW)
        self.assertEqual(start, datetime(2024, 3, 12, 10, 0, tzinfo=dt_timezone.utc))
        self.assertEqual(previous, datetime(2023, 12, 12, 10, 0, tzinfo=dt_timezone.utc))

        with self.assertRaises(ValueError):
            get_date_range('decade', NOW)

    def test_metrics(self):
        """Totals, rates, efficiency and trend are computed."""
        completed = [
            {'id': '1', 'status': 'completed', 'estimated_duration': 30, 'actual_duration': 60},
            {'id': '2', 'status': 'completed', 'estimated_duration': 60, 'actual_duration': 30},
        ]
        tasks = completed + [{'id': '3', 'status': 'pending'}, {'id': '4', 'status': 'pending'}]
        sessions = [
            {'duration_minutes': 30, 'productivity_score': 4},
            {'duration_minutes': 45, 'productivity_score': None},
        ]
        metrics = calculate_productivity_metrics(tasks, sessions, completed, [completed[0]])

        self.assertEqual(metrics.completion_rate, 50.0)
        self.assertEqual(metrics.total_work_time, 75)
        self.assertEqual(metrics.average_task_time, 37.5)
        self.assertEqual(metrics.efficiency, 125.0)
        self.assertEqual(metrics.productivity, 4.0)
        self.assertEqual(metrics.previous_period_comparison, 100.0)
        self.assertEqual(metrics.trend, 'up')

    def test_efficiency_is_capped(self):
        """Efficiency never exceeds 200%."""
        completed = [{'estimated_duration': 100, 'actual_duration': 10}]
        self.assertEqual(calculate_productivity_metrics(completed, [], completed, []).efficiency, 200.0)

    def test_trend(self):
        """Changes within 10% are stable."""
        two = [{}, {}]
        self.assertEqual(calculate_productivity_metrics(two, [], two, two).trend, 'stable')
        self.assertEqual(calculate_productivity_metrics(two, [], two[:1], two).trend, 'down')
        self.assertEqual(calculate_productivity_metrics([], [], [], []).previous_period_comparison, 0.0)

    def test_productivity_for_period(self):
        """Tasks and sessions are split into the current and previous window."""
        tasks = [
            {'id': '1', 'status': 'completed', 'completed_at': moment(days=2)},
            {'id': '2', 'status': 'completed', 'completed_at': moment(days=10)},
            {'id': '3', 'status': 'completed', 'completed_at': moment(days=30)},
            {'id': '4', 'status': 'pending'},
        ]
        sessions = [
            {'duration_minutes': 25, 'started_at': moment(days=1)},
            {'duration_minutes': 90, 'started_at': moment(days=20)},
        ]
        metrics = productivity_for_period(tasks, sessions, 'week', NOW)
        self.assertEqual(metrics.total_tasks, 4)
        self.assertEqual(metrics.completed_tasks, 1)
        self.assertEqual(metrics.total_work_time, 25)
        self.assertEqual(metrics.trend, 'stable')


class AssistantContextTests(TestCase):
    """Tests for the assistant context summary."""

    def test_work_pattern(self):
        """Completions today map to a work pattern."""
        self.assertEqual(
            [get_work_pattern(n) for n in (0, 1, 3, 5)],
            ['inactive', 'low', 'moderate', 'productive']
        )

    def test_build_context(self):
        """Only top-level tasks are summarized, most important first."""
        tasks = [
            {'id': '1', 'title': 'Low', 'priority': 'low', 'status': 'pending', 'updated_at': moment(hours=1)},
            {'id': '2', 'title': 'Urgent', 'priority': 'urgent', 'status': 'pending', 'updated_at': moment(days=3)},
            {'id': '3', 'title': 'Done', 'priority': 'medium', 'status': 'completed',
             'completed_at': moment(hours=2), 'updated_at': moment(hours=2)},
            {'id': '4', 'title': 'Sub', 'priority': 'urgent', 'status': 'pending', 'task_level': 2},
        ]
        projects = [
            {'id': 'p1', 'name': 'Active', 'status': 'active', 'progress': 40},
            {'id': 'p2', 'name': 'Paused', 'status': 'paused', 'progress': 90},
        ]
        context = build_assistant_context('u1', tasks, projects, NOW)

        self.assertEqual(context['time_of_day'], 'morning')
        self.assertEqual(context['total_tasks'], 3)
        self.assertEqual(context['recent_completions'], 1)
        self.assertEqual(context['work_pattern'], 'low')
        self.assertEqual([t['id'] for t in context['recent_tasks']], ['2', '3', '1'])
        self.assertEqual([p['id'] for p in context['recent_projects']], ['p1'])
        self.assertEqual(context['last_task_update'], (NOW - timedelta(hours=1)).isoformat())


class APIEndpointTests(APITestCase):
    """Tests for the API endpoints."""

    def setUp(self):
        cache.clear()
        views.contextual_scorer.cache.clear()
        views.context_cache.clear()
        views.recommendation_engine.clear()
        self.today = timezone.localdate()

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_what_to_do_now_picks_overdue_task(self):
        """POST /api/planner/what-to-do-now/ should pick the overdue task."""
        data = {
            'tasks': [
                {'id': 1, 'title': 'Write report', 'priority': 'urgent', 'status': 'in_progress'},
                {'id': 2, 'title': 'Pay invoice', 'priority': 'low',
                 'due_date': (self.today - timedelta(days=2)).isoformat()},
            ]
        }
        response = self.post('/api/planner/what-to-do-now/', data)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['recommendation']['task']['id'], '2')
        self.assertEqual(response.data['recommendation']['score'], 1000)
        self.assertEqual(len(response.data['alternatives']), 1)

    def test_what_to_do_now_with_nothing_to_do(self):
        """Empty or fully completed lists return no recommendation."""
        response = self.post('/api/planner/what-to-do-now/', {'tasks': []})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['recommendation'])

        response = self.post('/api/planner/what-to-do-now/', {
            'tasks': [{'id': '1', 'title': 'Done', 'status': 'completed'}]
        })
        self.assertIsNone(response.data['recommendation'])

    def test_what_to_do_now_respects_exclusions(self):
        """Skipped tasks are not recommended."""
        response = self.post('/api/planner/what-to-do-now/', {
            'tasks': [
                {'id': '1', 'title': 'A', 'priority': 'urgent'},
                {'id': '2', 'title': 'B', 'priority': 'low'},
            ],
            'excluded_ids': ['1'],
        })
        self.assertEqual(response.data['recommendation']['task']['id'], '2')

    def test_invalid_input_error_codes(self):
        """Invalid fields map to specific error codes."""
        cases = [
            ({}, ErrorCode.ERR_INVALID_INPUT),
            ({'tasks': [{'id': '1', 'title': 'A', 'status': 'done'}]}, ErrorCode.ERR_INVALID_STATUS),
            ({'tasks': [{'id': '1', 'title': 'A', 'due_date': '31/12/2024'}]}, ErrorCode.ERR_INVALID_DATE),
            ({'tasks': [{'id': '1', 'title': ''}]}, ErrorCode.ERR_MISSING_FIELD),
            ({'tasks': [{'id': '1', 'title': 'A'}, {'id': '1', 'title': 'B'}]}, ErrorCode.ERR_DUPLICATE_ID),
        ]
        for data, code in cases:
            with self.subTest(code=code):
                response = self.post('/api/planner/what-to-do-now/', data)
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertFalse(response.data['success'])
                self.assertEqual(response.data['error_code'], code.value)

    def test_rank_endpoint(self):
        """POST /api/planner/rank/ returns open tasks best first."""
        response = self.post('/api/planner/rank/', {
            'tasks': [
                {'id': '1', 'title': 'A', 'priority': 'low'},
                {'id': '2', 'title': 'B', 'priority': 'high'},
                {'id': '3', 'title': 'C', 'status': 'completed'},
            ]
        })
        self.assertEqual(response.data['count'], 2)
        self.assertEqual([t['task']['id'] for t in response.data['tasks']], ['2', '1'])

    def test_contextual_scores_endpoint(self):
        """POST /api/planner/contextual-scores/ returns scores and messages."""
        response = self.post('/api/planner/contextual-scores/', {
            'tasks': [
                {'id': '1', 'title': 'A', 'priority': 'low'},
                {'id': '2', 'title': 'B', 'priority': 'high', 'status': 'in_progress'},
            ],
            'context': {'energy_level': 'high', 'preferred_tags': ['writing']},
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results'][0]['task']['id'], '2')
        self.assertIn('message', response.data['results'][0])

        response = self.post('/api/planner/contextual-scores/', {'tasks': []})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error_code'], ErrorCode.ERR_EMPTY_TASKS.value)

    def test_contextual_scores_do_not_leak_between_requests(self):
        """Two requests reusing a task id each get their own score and title."""
        first = self.post('/api/planner/contextual-scores/', {
            'tasks': [{'id': '1', 'title': 'Quarterly launch', 'priority': 'high', 'status': 'in_progress'}],
        })
        second = self.post('/api/planner/contextual-scores/', {
            'tasks': [{'id': '1', 'title': 'Grocery list', 'priority': 'low'}],
        })

        first_result = first.data['results'][0]
        second_result = second.data['results'][0]
        self.assertEqual(first_result['score'], 85)
        self.assertIn('Quarterly launch', first_result['message'])
        self.assertEqual(second_result['score'], 50)
        self.assertIn('Grocery list', second_result['message'])
        self.assertNotIn('Quarterly launch', second_result['message'])

    def test_time_based_endpoint(self):
        """The window can be given in minutes or in a message."""
        tasks = [{'id': '1', 'title': 'Misc', 'status': 'in_progress', 'estimated_duration': 20}]

        response = self.post('/api/planner/time-based/', {'tasks': tasks, 'available_minutes': 30})
        self.assertEqual(response.data['recommendations'][0]['urgency_score'], 85)

        response = self.post('/api/planner/time-based/', {'tasks': tasks, 'message': 'I have 20 minutes'})
        self.assertEqual(response.data['available_minutes'], 20)
        self.assertEqual(len(response.data['recommendations']), 1)

        response = self.post('/api/planner/time-based/', {'tasks': tasks, 'message': 'hello'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error_code'], ErrorCode.ERR_INVALID_TIME_WINDOW.value)

    def test_time_context_endpoint(self):
        """GET /api/planner/time-context/ describes the time of day."""
        response = self.client.get('/api/planner/time-context/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('time_of_day', response.data)
        self.assertIn('energy_level', response.data)

    def test_task_insights_endpoint(self):
        """POST /api/insights/task/ returns the context and insights."""
        tasks = [
            {'id': '1', 'title': 'Main'},
            {'id': '2', 'title': 'Sub', 'task_level': 2, 'parent_task_id': '1', 'status': 'completed'},
        ]
        response = self.post('/api/insights/task/', {'task_id': '1', 'tasks': tasks})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['context']['completion_status']['overall_progress'], 100)
        self.assertIsInstance(response.data['insights'], list)

        response = self.post('/api/insights/task/', {'task_id': '99', 'tasks': tasks})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error_code'], ErrorCode.ERR_TASK_NOT_FOUND.value)

    def test_self_parent_is_rejected(self):
        """A task cannot be its own parent."""
        response = self.post('/api/insights/task/', {
            'task_id': '1', 'tasks': [{'id': '1', 'title': 'Loop', 'parent_task_id': '1'}]
        })
        self.assertEqual(response.data['error_code'], ErrorCode.ERR_SELF_PARENT.value)

    def test_recommendation_feedback_flow(self):
        """Generate, implement and read the effectiveness stats."""
        tasks = [
            {'id': str(i), 'title': f'Late {i}', 'estimated_duration': 30,
             'due_date': (self.today - timedelta(days=1)).isoformat()}
            for i in range(3)
        ]
        response = self.post('/api/recommendations/', {'tasks': tasks})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        recommendation = response.data['recommendations'][0]
        self.assertEqual(recommendation['urgency'], 'critical')

        response = self.post(f"/api/recommendations/{recommendation['id']}/implement/", {})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/recommendations/effectiveness/')
        self.assertEqual(response.data['total_feedback'], 1)
        self.assertEqual(response.data['implementation_rate'], 100.0)

    def test_feedback_validation_and_unknown_ids(self):
        """Ratings are 1-5; unknown ids are 404."""
        response = self.post('/api/recommendations/nope/feedback/', {'rating': 4})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error_code'], ErrorCode.ERR_RECOMMENDATION_NOT_FOUND.value)

        response = self.post('/api/recommendations/nope/feedback/', {'rating': 6})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.post('/api/recommendations/nope/dismiss/', {'reason': 'meh'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_implement_rejects_non_object_body(self):
        """A JSON array body is a 400, not a server error."""
        response = self.post('/api/recommendations/nope/implement/', ['u1'])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error_code'], ErrorCode.ERR_INVALID_INPUT.value)

    def test_productivity_endpoint(self):
        """POST /api/analytics/productivity/ returns the period metrics."""
        completed_at = (timezone.now() - timedelta(days=1)).isoformat()
        response = self.post('/api/analytics/productivity/', {
            'tasks': [
                {'id': '1', 'title': 'A', 'status': 'completed', 'completed_at': completed_at},
                {'id': '2', 'title': 'B'},
            ],
            'sessions': [{'duration_minutes': 30, 'started_at': completed_at, 'productivity_score': 4}],
            'period': 'month',
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['metrics']['completion_rate'], 50.0)
        self.assertEqual(response.data['metrics']['trend'], 'up')

    def test_assistant_context_is_cached(self):
        """The second identical request reports no change."""
        data = {'user_id': 'u1', 'tasks': [{'id': '1', 'title': 'A'}]}

        first = self.post('/api/assistant/context/', data)
        second = self.post('/api/assistant/context/', data)
        self.assertTrue(first.data['changed'])
        self.assertFalse(second.data['changed'])

        response = self.client.get('/api/cache/stats/')
        self.assertEqual(response.data['context_cache']['total_entries'], 1)

    def test_api_info_endpoint(self):
        """GET /api/ should return API information."""
        response = self.client.get('/api/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('name', response.data)
        self.assertIn('endpoints', response.data)
        self.assertIn('ERR_TASK_NOT_FOUND', response.data['error_codes'])
