"""
API Views for the Smart Planner.

Every endpoint is stateless with respect to tasks: clients POST the records
they already have and get scores, recommendations, insights or aggregates
back. Only the recommendation feedback and the assistant context cache live
in the process.
"""

import logging

from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, throttle_classes
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from .analytics import get_date_range, productivity_for_period
from .cache import ContextCache, TTLCache, measure_performance
from .conf import get_planner_setting
from .context import build_assistant_context
from .contextual_scoring import ContextualTaskScorer, get_time_context as describe_time_of_day
from .insights import ContextualInsightGenerator, build_task_context
from .prioritization import rank_tasks as rank_candidate_tasks
from .recommendations import ActionableRecommendationEngine, RecommendationFeedback
from .serializers import (
    AssistantContextSerializer,
    ContextualScoresSerializer,
    DismissSerializer,
    FeedbackSerializer,
    ImplementSerializer,
    ProductivityRequestSerializer,
    RankTasksSerializer,
    RecommendationsRequestSerializer,
    TaskInsightsSerializer,
    TimeBasedRequestSerializer,
    WhatToDoNowSerializer,
)
from .time_recommendations import TimeBasedRecommendationEngine
from .validation import ErrorCode, PlannerError, TaskNotFound, RecommendationNotFound, validate_tasks

logger = logging.getLogger(__name__)


# ============================================
# RATE LIMITING CLASSES
# ============================================

class PlannerRateThrottle(AnonRateThrottle):
    """Rate limit for the scoring and recommendation endpoints."""
    scope = 'planner'


class FeedbackRateThrottle(AnonRateThrottle):
    """Rate limit for recommendation feedback."""
    scope = 'feedback'


class AnalyticsRateThrottle(AnonRateThrottle):
    """Rate limit for analytics and assistant context."""
    scope = 'analytics'


# ============================================
# SHARED ENGINES
# ============================================

contextual_scorer = ContextualTaskScorer(
    cache=TTLCache(
        max_entries=get_planner_setting('SCORE_CACHE_MAX_ENTRIES'),
        cleanup_interval=get_planner_setting('SCORE_CACHE_CLEANUP_INTERVAL'),
    ),
    score_ttl=get_planner_setting('SCORE_CACHE_TTL'),
    message_ttl=get_planner_setting('MESSAGE_CACHE_TTL'),
)

context_cache = ContextCache(
    max_entries=get_planner_setting('CONTEXT_CACHE_MAX_ENTRIES'),
    default_ttl=get_planner_setting('CONTEXT_CACHE_TTL'),
    cleanup_interval=get_planner_setting('CONTEXT_CACHE_CLEANUP_INTERVAL'),
)

recommendation_engine = ActionableRecommendationEngine(
    confidence_threshold=get_planner_setting('RECOMMENDATION_CONFIDENCE_THRESHOLD'),
    max_recommendations=get_planner_setting('RECOMMENDATION_STORE_MAX'),
    max_feedback=get_planner_setting('FEEDBACK_STORE_MAX'),
)

time_engine = TimeBasedRecommendationEngine()
insight_generator = ContextualInsightGenerator()


# ============================================
# ERROR HANDLING
# ============================================

FIELD_ERROR_CODES = {
    'title': ErrorCode.ERR_MISSING_FIELD,
    'due_date': ErrorCode.ERR_INVALID_DATE,
    'created_at': ErrorCode.ERR_INVALID_DATE,
    'updated_at': ErrorCode.ERR_INVALID_DATE,
    'completed_at': ErrorCode.ERR_INVALID_DATE,
    'started_at': ErrorCode.ERR_INVALID_DATE,
    'status': ErrorCode.ERR_INVALID_STATUS,
    'priority': ErrorCode.ERR_INVALID_PRIORITY,
    'task_level': ErrorCode.ERR_INVALID_TASK_LEVEL,
    'available_minutes': ErrorCode.ERR_INVALID_TIME_WINDOW,
}


def _error_fields(errors):
    """Yield every field name mentioned in a (nested) serializer error."""
    if isinstance(errors, dict):
        for key, value in errors.items():
            if isinstance(key, str):
                yield key
            yield from _error_fields(value)
    elif isinstance(errors, list):
        for item in errors:
            yield from _error_fields(item)


def _is_empty_tasks_error(errors) -> bool:
    detail = errors.get('tasks') if isinstance(errors, dict) else None
    return isinstance(detail, list) and any(getattr(item, 'code', None) == 'min_length' for item in detail)


def _serializer_error_code(errors) -> ErrorCode:
    if _is_empty_tasks_error(errors):
        return ErrorCode.ERR_EMPTY_TASKS
    for field_name in _error_fields(errors):
        if field_name in FIELD_ERROR_CODES:
            return FIELD_ERROR_CODES[field_name]
    return ErrorCode.ERR_INVALID_INPUT


def _error_response(code: ErrorCode, message: str, errors=None, http_status=status.HTTP_400_BAD_REQUEST) -> Response:
    body = {
        'success': False,
        'error_code': code.value,
        'message': message,
    }
    if errors is not None:
        body['errors'] = errors
    return Response(body, status=http_status)


def _invalid_serializer_response(serializer) -> Response:
    return _error_response(
        _serializer_error_code(serializer.errors),
        'Invalid input data. Please check your request format.',
        errors=serializer.errors
    )


def _invalid_tasks_response(tasks):
    """Run the cross-record checks; return an error response or None."""
    validation_errors = validate_tasks(tasks)
    if not validation_errors:
        return None
    return _error_response(
        validation_errors[0].code,
        'Validation failed',
        errors=[e.to_dict() for e in validation_errors]
    )


def _not_found_response(error: PlannerError) -> Response:
    return _error_response(error.code, error.message, http_status=status.HTTP_404_NOT_FOUND)


# ============================================
# API ENDPOINTS
# ============================================

TASKS_REQUEST = {
    'application/json': {
        'type': 'object',
        'properties': {
            'tasks': {'type': 'array', 'items': {'type': 'object'}},
            'excluded_ids': {'type': 'array', 'items': {'type': 'string'}},
        },
        'required': ['tasks']
    }
}


@extend_schema(
    summary="What should I work on now?",
    description="""
    Pick the single best open task to work on right now.

    Overdue work comes first, then work due today, then due tomorrow,
    in-progress tasks, manual priority and tasks left untouched.
    Completed, cancelled, archived and excluded tasks are never picked.
    """,
    request=TASKS_REQUEST,
    responses={200: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample(
            'Two tasks',
            value={'tasks': [
                {'id': '1', 'title': 'Write report', 'priority': 'high'},
                {'id': '2', 'title': 'Pay invoice', 'due_date': '2024-01-01'},
            ]},
            request_only=True
        )
    ],
    tags=['Planner']
)
@api_view(['POST'])
@throttle_classes([PlannerRateThrottle])
def what_to_do_now(request: Request) -> Response:
    """
    Recommend the next task.

    POST /api/planner/what-to-do-now/

    Request Body:
    {
        "tasks": [...],
        "excluded_ids": ["3"],        // Optional: tasks the user skipped
        "alternatives": 2             // Optional: runner-ups to include
    }
    """
    serializer = WhatToDoNowSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    tasks = data['tasks']
    invalid = _invalid_tasks_response(tasks)
    if invalid is not None:
        return invalid

    ranked = rank_candidate_tasks(tasks, data['excluded_ids'], timezone.localtime())
    best = ranked[0] if ranked else None

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'recommendation': best.to_dict() if best else None,
        'alternatives': [r.to_dict() for r in ranked[1:1 + data['alternatives']]],
        'candidate_count': len(ranked),
        'message': best.reason if best else 'Nothing left to do. Enjoy your free time!',
    })


@extend_schema(
    summary="Rank open tasks",
    description="Score every open task and return them best first. Ties keep input order.",
    request=TASKS_REQUEST,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Planner']
)
@api_view(['POST'])
@throttle_classes([PlannerRateThrottle])
def rank_tasks(request: Request) -> Response:
    """
    POST /api/planner/rank/
    """
    serializer = RankTasksSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    invalid = _invalid_tasks_response(data['tasks'])
    if invalid is not None:
        return invalid

    ranked = rank_candidate_tasks(data['tasks'], data['excluded_ids'], timezone.localtime())
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(ranked),
        'tasks': [r.to_dict() for r in ranked],
    })


@extend_schema(
    summary="Context-aware task scores",
    description="""
    Score each task from 0 to 100 against the user's working context
    (preferred hours, energy level, favourite tags, recent successes) and
    attach a short message. Scores are cached for a minute, messages for
    five minutes.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'context': {'type': 'object'},
            },
            'required': ['tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Planner']
)
@api_view(['POST'])
@throttle_classes([PlannerRateThrottle])
def contextual_scores(request: Request) -> Response:
    """
    POST /api/planner/contextual-scores/
    """
    serializer = ContextualScoresSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    context = dict(data.get('context') or {})
    now = timezone.localtime()

    results = measure_performance(
        'contextual_scores',
        lambda: contextual_scorer.score_tasks(data['tasks'], context, now),
        threshold_ms=get_planner_setting('SLOW_OPERATION_MS')
    )
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(results),
        'time_context': describe_time_of_day(now),
        'results': results,
    })


@extend_schema(
    summary="Recommendations for a time window",
    description="""
    Recommend up to three tasks that fit in the available time. The window
    can be given in minutes or detected from a message such as
    "I have 20 minutes" or "half an hour".
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'available_minutes': {'type': 'integer'},
                'message': {'type': 'string'},
            },
            'required': ['tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Planner']
)
@api_view(['POST'])
@throttle_classes([PlannerRateThrottle])
def time_based_recommendations(request: Request) -> Response:
    """
    POST /api/planner/time-based/
    """
    serializer = TimeBasedRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    intention = None
    available_minutes = data.get('available_minutes')
    if available_minutes is None:
        intention = time_engine.detect_time_intention(data.get('message', ''))
        available_minutes = intention.get('minutes')

    if not available_minutes:
        return _error_response(
            ErrorCode.ERR_INVALID_TIME_WINDOW,
            'Provide available_minutes or a message that mentions how much time you have'
        )

    recommendations = time_engine.generate_time_based_recommendations(
        data['tasks'], available_minutes, timezone.localtime()
    )
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'available_minutes': available_minutes,
        'time_intention': intention,
        'recommendations': [r.to_dict() for r in recommendations],
    })


@extend_schema(
    summary="Get time-based context",
    description="Get the focus level suited to the current time of day.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Utilities']
)
@api_view(['GET'])
def get_time_context(request: Request) -> Response:
    """
    GET /api/planner/time-context/
    """
    now = timezone.localtime()
    return Response({
        'success': True,
        'current_time': now.isoformat(),
        **describe_time_of_day(now)
    })


@extend_schema(
    summary="Task insights",
    description="""
    Build the context of one task (subtasks, microtasks, recent logs,
    dependencies) and return specific insights about its timing, progress,
    dependencies and productivity.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'task_id': {'type': 'string'},
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'logs': {'type': 'array', 'items': {'type': 'object'}},
                'min_confidence': {'type': 'number'},
            },
            'required': ['task_id', 'tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    tags=['Insights']
)
@api_view(['POST'])
@throttle_classes([PlannerRateThrottle])
def task_insights(request: Request) -> Response:
    """
    POST /api/insights/task/
    """
    serializer = TaskInsightsSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    invalid = _invalid_tasks_response(data['tasks'])
    if invalid is not None:
        return invalid

    try:
        context = build_task_context(data['task_id'], data['tasks'], data['logs'])
    except TaskNotFound as e:
        return _not_found_response(e)

    min_confidence = data.get('min_confidence')
    if min_confidence is None:
        min_confidence = get_planner_setting('INSIGHT_MIN_CONFIDENCE')

    insights = insight_generator.generate_specific_insights(
        context, timezone.localtime(), min_confidence=min_confidence
    )
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'context': context.to_dict(),
        'insights': [i.to_dict() for i in insights],
    })


@extend_schema(
    summary="Actionable recommendations",
    description="Workflow recommendations over the whole task list, most urgent first.",
    request=TASKS_REQUEST,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Recommendations']
)
@api_view(['POST'])
@throttle_classes([PlannerRateThrottle])
def actionable_recommendations(request: Request) -> Response:
    """
    POST /api/recommendations/
    """
    serializer = RecommendationsRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    tasks = serializer.validated_data['tasks']
    invalid = _invalid_tasks_response(tasks)
    if invalid is not None:
        return invalid

    now = timezone.localtime()
    recommendations = measure_performance(
        'actionable_recommendations',
        lambda: recommendation_engine.generate_recommendations(tasks, now),
        threshold_ms=get_planner_setting('SLOW_OPERATION_MS')
    )
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(recommendations),
        'recommendations': [r.to_dict() for r in recommendations],
    })


@extend_schema(
    summary="Rate a recommendation",
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'rating': {'type': 'integer', 'minimum': 1, 'maximum': 5},
                'was_implemented': {'type': 'boolean'},
                'perceived_value': {'type': 'string', 'enum': ['high', 'medium', 'low']},
                'improvement_suggestions': {'type': 'string'},
            },
            'required': ['rating']
        }
    },
    responses={201: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    tags=['Recommendations']
)
@api_view(['POST'])
@throttle_classes([FeedbackRateThrottle])
def recommendation_feedback(request: Request, recommendation_id: str) -> Response:
    """
    POST /api/recommendations/<id>/feedback/
    """
    serializer = FeedbackSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    try:
        feedback = recommendation_engine.record_feedback(
            RecommendationFeedback(recommendation_id=recommendation_id, **serializer.validated_data)
        )
    except RecommendationNotFound as e:
        return _not_found_response(e)

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'feedback': feedback.to_dict(),
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    summary="Mark a recommendation as implemented",
    request={
        'application/json': {
            'type': 'object',
            'properties': {'user_id': {'type': 'string'}},
        }
    },
    responses={201: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    tags=['Recommendations']
)
@api_view(['POST'])
@throttle_classes([FeedbackRateThrottle])
def implement_recommendation(request: Request, recommendation_id: str) -> Response:
    """
    POST /api/recommendations/<id>/implement/
    """
    serializer = ImplementSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    try:
        feedback = recommendation_engine.implement_recommendation(
            recommendation_id, user_id=serializer.validated_data.get('user_id')
        )
    except RecommendationNotFound as e:
        return _not_found_response(e)

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'feedback': feedback.to_dict(),
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    summary="Dismiss a recommendation",
    request={
        'application/json': {
            'type': 'object',
            'properties': {'reason': {'type': 'string'}},
        }
    },
    responses={201: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    tags=['Recommendations']
)
@api_view(['POST'])
@throttle_classes([FeedbackRateThrottle])
def dismiss_recommendation(request: Request, recommendation_id: str) -> Response:
    """
    POST /api/recommendations/<id>/dismiss/
    """
    serializer = DismissSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    try:
        feedback = recommendation_engine.dismiss_recommendation(
            recommendation_id,
            reason=serializer.validated_data.get('reason'),
            user_id=serializer.validated_data.get('user_id')
        )
    except RecommendationNotFound as e:
        return _not_found_response(e)

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'feedback': feedback.to_dict(),
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    summary="Recommendation effectiveness",
    description="Average rating and implementation rate, overall and per recommendation type.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Recommendations']
)
@api_view(['GET'])
def recommendation_effectiveness(request: Request) -> Response:
    """
    GET /api/recommendations/effectiveness/
    """
    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        **recommendation_engine.get_effectiveness_stats()
    })


@extend_schema(
    summary="Productivity metrics",
    description="""
    Completion rate, work time, estimate accuracy and session productivity
    for the last week, month, quarter or year, compared with the period
    before it.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'sessions': {'type': 'array', 'items': {'type': 'object'}},
                'period': {'type': 'string', 'enum': ['week', 'month', 'quarter', 'year']},
            },
            'required': ['tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Analytics']
)
@api_view(['POST'])
@throttle_classes([AnalyticsRateThrottle])
def productivity_metrics(request: Request) -> Response:
    """
    POST /api/analytics/productivity/
    """
    serializer = ProductivityRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    now = timezone.localtime()
    start_date, previous_start_date, _ = get_date_range(data['period'], now)
    metrics = productivity_for_period(data['tasks'], data['sessions'], data['period'], now)

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'period': data['period'],
        'start_date': start_date.isoformat(),
        'previous_start_date': previous_start_date.isoformat(),
        'metrics': metrics.to_dict(),
    })


@extend_schema(
    summary="Assistant context",
    description="""
    Summarize the user's current situation for the planning assistant and
    cache it per user. The response says whether the context changed since
    it was last cached.
    """,
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'user_id': {'type': 'string'},
                'tasks': {'type': 'array', 'items': {'type': 'object'}},
                'projects': {'type': 'array', 'items': {'type': 'object'}},
                'context_type': {'type': 'string'},
            },
            'required': ['user_id', 'tasks']
        }
    },
    responses={200: OpenApiTypes.OBJECT},
    tags=['Assistant']
)
@api_view(['POST'])
@throttle_classes([AnalyticsRateThrottle])
def assistant_context(request: Request) -> Response:
    """
    POST /api/assistant/context/
    """
    serializer = AssistantContextSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid_serializer_response(serializer)

    data = serializer.validated_data
    context = build_assistant_context(
        data['user_id'], data['tasks'], data['projects'], timezone.localtime()
    )
    changed = context_cache.has_changed(data['user_id'], context, data['context_type'])
    context_cache.set(data['user_id'], context, context_type=data['context_type'])

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'changed': changed,
        'context_hash': ContextCache.generate_context_hash(context),
        'context': context,
    })


@extend_schema(
    summary="Cache statistics",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Utilities']
)
@api_view(['GET'])
def cache_stats(request: Request) -> Response:
    """
    GET /api/cache/stats/
    """
    return Response({
        'success': True,
        'context_cache': context_cache.get_stats().to_dict(),
        'popular_entries': context_cache.get_popular_entries(),
        'score_cache': contextual_scorer.cache.stats(),
    })


@extend_schema(
    summary="API information",
    description="Get API information and available endpoints.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Info']
)
@api_view(['GET'])
def api_info(request: Request) -> Response:
    """
    Return API information and available endpoints.

    GET /api/
    """
    return Response({
        'name': 'Smart Planner API',
        'version': '1.0.0',
        'documentation': '/api/docs/',
        'features': [
            'What-to-do-now recommendation',
            'Context-aware task scoring',
            'Time-window recommendations',
            'Task hierarchy insights',
            'Actionable workflow recommendations with feedback',
            'Productivity metrics',
            'Cached assistant context',
            'OpenAPI/Swagger documentation',
        ],
        'endpoints': {
            'POST /api/planner/what-to-do-now/': 'Recommend the next task to work on',
            'POST /api/planner/rank/': 'Rank open tasks',
            'POST /api/planner/contextual-scores/': 'Score tasks against the working context',
            'POST /api/planner/time-based/': 'Recommend tasks for a time window',
            'GET /api/planner/time-context/': 'Get time-of-day focus suggestions',
            'POST /api/insights/task/': 'Insights for one task',
            'POST /api/recommendations/': 'Actionable recommendations',
            'POST /api/recommendations/<id>/feedback/': 'Rate a recommendation',
            'POST /api/recommendations/<id>/implement/': 'Mark a recommendation implemented',
            'POST /api/recommendations/<id>/dismiss/': 'Dismiss a recommendation',
            'GET /api/recommendations/effectiveness/': 'Recommendation effectiveness',
            'POST /api/analytics/productivity/': 'Productivity metrics for a period',
            'POST /api/assistant/context/': 'Build and cache the assistant context',
            'GET /api/cache/stats/': 'Cache statistics',
            'GET /api/docs/': 'Interactive API documentation',
            'GET /api/schema/': 'OpenAPI schema',
            'GET /api/': 'This info endpoint'
        },
        'error_codes': {
            code.value: code.name for code in ErrorCode
        }
    })
