"""
Django settings for the smart_planner project.

Values come from PLANNER_* environment variables, optionally loaded from a
.env file next to manage.py. Nothing secret is required to import this module.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env', override=False)

ENV_PREFIX = 'PLANNER'


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = '') -> str:
    value = os.getenv(_k(name))
    return default if value is None else value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(_k(name))
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(_k(name))
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(_k(name))
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(_k(name))
    if raw is None or raw.strip() == '':
        return list(default)
    return [p.strip() for p in raw.replace(',', ' ').split() if p.strip()]


# ==================== Core ====================

SECRET_KEY = _env('SECRET_KEY', 'django-insecure-smart-planner-dev-key')

DEBUG = _env_bool('DEBUG', True)

ALLOWED_HOSTS = _env_list('ALLOWED_HOSTS', ['localhost', '127.0.0.1', 'testserver'])

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_spectacular',
    'planner',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'smart_planner.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
            ],
        },
    },
]

WSGI_APPLICATION = 'smart_planner.wsgi.application'

# Planner records are never persisted; the database only backs Django itself.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = _env('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ==================== REST framework ====================

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'UNAUTHENTICATED_USER': None,
    'DEFAULT_THROTTLE_RATES': {
        'anon': _env('THROTTLE_ANON', '120/min'),
        'planner': _env('THROTTLE_PLANNER', '60/min'),
        'feedback': _env('THROTTLE_FEEDBACK', '30/min'),
        'analytics': _env('THROTTLE_ANALYTICS', '30/min'),
    },
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Smart Planner API',
    'DESCRIPTION': 'Task recommendations, insights and productivity metrics',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}

# ==================== Planner ====================

PLANNER = {
    'CONTEXT_CACHE_MAX_ENTRIES': _env_int('CONTEXT_CACHE_MAX_ENTRIES', 50),
    'CONTEXT_CACHE_TTL': _env_int('CONTEXT_CACHE_TTL', 5 * 60),
    'CONTEXT_CACHE_CLEANUP_INTERVAL': _env_int('CONTEXT_CACHE_CLEANUP_INTERVAL', 60),
    'SCORE_CACHE_TTL': _env_int('SCORE_CACHE_TTL', 60),
    'MESSAGE_CACHE_TTL': _env_int('MESSAGE_CACHE_TTL', 5 * 60),
    'SCORE_CACHE_MAX_ENTRIES': _env_int('SCORE_CACHE_MAX_ENTRIES', 1000),
    'SCORE_CACHE_CLEANUP_INTERVAL': _env_int('SCORE_CACHE_CLEANUP_INTERVAL', 60),
    'RECOMMENDATION_CONFIDENCE_THRESHOLD': _env_float('RECOMMENDATION_CONFIDENCE_THRESHOLD', 0.7),
    'RECOMMENDATION_STORE_MAX': _env_int('RECOMMENDATION_STORE_MAX', 500),
    'FEEDBACK_STORE_MAX': _env_int('FEEDBACK_STORE_MAX', 1000),
    'INSIGHT_MIN_CONFIDENCE': _env_float('INSIGHT_MIN_CONFIDENCE', 0.6),
    'SLOW_OPERATION_MS': _env_int('SLOW_OPERATION_MS', 100),
}

# ==================== Logging ====================

LOG_LEVEL = _env('LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'planner': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
