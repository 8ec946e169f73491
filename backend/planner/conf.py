"""
Planner tuning, read from the ``PLANNER`` dict in Django settings.

Any key missing from settings falls back to the defaults below.
"""

from django.conf import settings

DEFAULTS = {
    'CONTEXT_CACHE_MAX_ENTRIES': 50,
    'CONTEXT_CACHE_TTL': 5 * 60,
    'CONTEXT_CACHE_CLEANUP_INTERVAL': 60,
    'SCORE_CACHE_TTL': 60,
    'MESSAGE_CACHE_TTL': 5 * 60,
    'SCORE_CACHE_MAX_ENTRIES': 1000,
    'SCORE_CACHE_CLEANUP_INTERVAL': 60,
    'RECOMMENDATION_CONFIDENCE_THRESHOLD': 0.7,
    'RECOMMENDATION_STORE_MAX': 500,
    'FEEDBACK_STORE_MAX': 1000,
    'INSIGHT_MIN_CONFIDENCE': 0.6,
    'SLOW_OPERATION_MS': 100,
}


def get_planner_setting(name: str):
    if name not in DEFAULTS:
        raise KeyError(f"Unknown planner setting: {name}")
    return getattr(settings, 'PLANNER', {}).get(name, DEFAULTS[name])
