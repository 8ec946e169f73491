"""
Serializers for planner requests.

Records are validated here and handed to the engines as plain dicts; nothing
is persisted. Dates accept either an ISO date (YYYY-MM-DD) or an ISO datetime.
"""

from rest_framework import serializers

from .analytics import PERIODS
from .prioritization import TASK_PRIORITIES, TASK_STATUSES, parse_due_date


class IsoDateField(serializers.Field):
    """
    A date or datetime given as an ISO 8601 string.

    Date-only values stay dates so that "due today" covers the whole day.
    """

    default_error_messages = {
        'invalid': 'Expected an ISO date (YYYY-MM-DD) or datetime.',
    }

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail('invalid')
        try:
            return parse_due_date(data)
        except (TypeError, ValueError):
            self.fail('invalid')

    def to_representation(self, value):
        return value.isoformat()


class TaskInputSerializer(serializers.Serializer):
    """
    A task record as submitted by the client.

    Ids are strings; numeric ids are accepted and converted.
    """

    id = serializers.CharField(required=False, allow_null=True)
    title = serializers.CharField(max_length=255, required=True)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=TASK_STATUSES, default='pending')
    priority = serializers.ChoiceField(choices=TASK_PRIORITIES, default='medium')
    due_date = IsoDateField(required=False, allow_null=True)
    estimated_duration = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    actual_duration = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    task_level = serializers.IntegerField(min_value=1, max_value=3, default=1)
    parent_task_id = serializers.CharField(required=False, allow_null=True)
    project_id = serializers.CharField(required=False, allow_null=True)
    is_archived = serializers.BooleanField(default=False)
    tags = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    dependencies = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    created_at = IsoDateField(required=False, allow_null=True)
    updated_at = IsoDateField(required=False, allow_null=True)
    completed_at = IsoDateField(required=False, allow_null=True)

    def validate_title(self, value):
        """Ensure title is not empty or just whitespace."""
        if not value or not value.strip():
            raise serializers.ValidationError("Title cannot be empty")
        return value.strip()


class ProjectInputSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField(max_length=255)
    status = serializers.CharField(default='active')
    progress = serializers.IntegerField(min_value=0, max_value=100, default=0)
    budget = serializers.FloatField(required=False, allow_null=True)
    budget_used = serializers.FloatField(required=False, allow_null=True)
    created_at = IsoDateField(required=False, allow_null=True)
    updated_at = IsoDateField(required=False, allow_null=True)


class TaskSessionSerializer(serializers.Serializer):
    task_id = serializers.CharField(required=False, allow_null=True)
    duration_minutes = serializers.IntegerField(min_value=0, default=0)
    started_at = IsoDateField()
    productivity_score = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)


class TaskLogSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_null=True)
    task_id = serializers.CharField()
    log_type = serializers.CharField(max_length=50)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    created_at = IsoDateField()


# ==================== Requests ====================

class WhatToDoNowSerializer(serializers.Serializer):
    """An empty task list is valid and yields no recommendation."""

    tasks = serializers.ListField(child=TaskInputSerializer(), allow_empty=True)
    excluded_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    alternatives = serializers.IntegerField(min_value=0, max_value=10, default=2)


class RankTasksSerializer(serializers.Serializer):
    tasks = serializers.ListField(child=TaskInputSerializer(), allow_empty=True)
    excluded_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class ScoringContextSerializer(serializers.Serializer):
    preferred_hours = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=23),
        required=False
    )
    energy_level = serializers.ChoiceField(choices=['high', 'medium', 'low'], required=False)
    preferred_tags = serializers.ListField(child=serializers.CharField(), required=False)
    recent_success_tasks = serializers.ListField(child=serializers.CharField(), required=False)


class ContextualScoresSerializer(serializers.Serializer):
    tasks = serializers.ListField(
        child=TaskInputSerializer(),
        min_length=1,
        error_messages={
            'min_length': 'At least one task is required for scoring'
        }
    )
    context = ScoringContextSerializer(required=False)


class TimeBasedRequestSerializer(serializers.Serializer):
    """
    Either ``available_minutes`` or a ``message`` mentioning an amount of
    time (e.g. "I have 20 minutes") must be given.
    """

    tasks = serializers.ListField(child=TaskInputSerializer(), allow_empty=True)
    available_minutes = serializers.IntegerField(min_value=1, max_value=24 * 60, required=False)
    message = serializers.CharField(required=False, allow_blank=True)


class TaskInsightsSerializer(serializers.Serializer):
    task_id = serializers.CharField()
    tasks = serializers.ListField(child=TaskInputSerializer(), min_length=1)
    logs = serializers.ListField(child=TaskLogSerializer(), required=False, default=list)
    min_confidence = serializers.FloatField(min_value=0, max_value=1, required=False)


class RecommendationsRequestSerializer(serializers.Serializer):
    tasks = serializers.ListField(child=TaskInputSerializer(), allow_empty=True)


class FeedbackSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    was_implemented = serializers.BooleanField(default=False)
    user_id = serializers.CharField(required=False, allow_null=True)
    perceived_value = serializers.ChoiceField(choices=['high', 'medium', 'low'], required=False)
    improvement_suggestions = serializers.CharField(required=False, allow_blank=True)


class ImplementSerializer(serializers.Serializer):
    user_id = serializers.CharField(required=False, allow_null=True)


class DismissSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)
    user_id = serializers.CharField(required=False, allow_null=True)


class ProductivityRequestSerializer(serializers.Serializer):
    tasks = serializers.ListField(child=TaskInputSerializer(), allow_empty=True)
    sessions = serializers.ListField(child=TaskSessionSerializer(), required=False, default=list)
    period = serializers.ChoiceField(choices=list(PERIODS), default='week')


class AssistantContextSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=255)
    tasks = serializers.ListField(child=TaskInputSerializer(), allow_empty=True)
    projects = serializers.ListField(child=ProjectInputSerializer(), required=False, default=list)
    context_type = serializers.CharField(max_length=50, default='default')
