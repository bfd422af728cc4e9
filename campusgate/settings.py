# campusgate/settings.py

"""
Django settings for the campusgate project.

Every value that differs between environments is read from the process
environment. Access-control engine settings live in ACCESS_CONTROL and are
read through core.utils.get_access_setting().
"""

import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Apps live under apps/ and are imported as top-level packages
# (e.g. `from fees.models import PaymentApproval`).
APPS_DIR = BASE_DIR / 'apps'
if str(APPS_DIR) not in sys.path:
    sys.path.insert(0, str(APPS_DIR))


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# =============================================================================
# CORE
# =============================================================================

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-campusgate-dev-key')

DEBUG = env_bool('DJANGO_DEBUG', default=False)

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
    if host.strip()
]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Project apps
    'utils.apps.UtilsConfig',
    'fees.apps.FeesConfig',
    'academics.apps.AcademicsConfig',
    'access.apps.AccessConfig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',

    # Audit context must be set before the access gate evaluates anything
    'utils.middleware.AuditContextMiddleware',
    'access.middleware.AccessControlMiddleware',
]

ROOT_URLCONF = 'campusgate.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'campusgate.wsgi.application'


# =============================================================================
# DATABASE
# =============================================================================

DB_ENGINE = os.environ.get('DB_ENGINE', 'django.db.backends.sqlite3')

if DB_ENGINE.endswith('sqlite3'):
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('DB_NAME', 'campusgate'),
            'USER': os.environ.get('DB_USER', 'postgres'),
            'PASSWORD': os.environ.get('DB_PASSWORD', ''),
            'HOST': os.environ.get('DB_HOST', 'localhost'),
            'PORT': os.environ.get('DB_PORT', '5432'),
            'CONN_MAX_AGE': int(os.environ.get('DB_CONN_MAX_AGE', '60')),
            'OPTIONS': {
                'connect_timeout': int(os.environ.get('DB_CONNECT_TIMEOUT', '5')),
            },
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# INTERNATIONALISATION
# =============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('TIME_ZONE', 'Africa/Kampala')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# =============================================================================
# ACCESS CONTROL ENGINE
# =============================================================================

ACCESS_CONTROL = {
    # Extra attempts for idempotent reads after a transient datastore error
    'READ_RETRY_ATTEMPTS': int(os.environ.get('ACCESS_READ_RETRY_ATTEMPTS', '1')),

    # Request paths gated by access.middleware.AccessControlMiddleware
    'PROTECTED_PATH_PREFIXES': [
        prefix.strip()
        for prefix in os.environ.get('ACCESS_PROTECTED_PATHS', '/portal/,/results/').split(',')
        if prefix.strip()
    ],

    # Access window length used when a payment is recorded without one
    'DEFAULT_ACCESS_PERIOD_DAYS': int(os.environ.get('ACCESS_DEFAULT_PERIOD_DAYS', '180')),

    # Registration deadline in seconds (None = no deadline)
    'REGISTRATION_DEADLINE_SECONDS': (
        float(os.environ['ACCESS_REGISTRATION_DEADLINE_SECONDS'])
        if os.environ.get('ACCESS_REGISTRATION_DEADLINE_SECONDS') else None
    ),

    # Attribute on request.user holding the student's id
    'STUDENT_ID_ATTRIBUTE': os.environ.get('ACCESS_STUDENT_ID_ATTRIBUTE', 'student_id'),

    # Per-module rules: 'access' follows has_access, 'payment_approved'
    # additionally needs an approved payment. Longest matching prefix wins;
    # PROTECTED_PATH_PREFIXES not listed here use 'access'.
    'MODULE_RULES': {
        '/portal/results/': 'access',
        '/portal/courses/': 'access',
        '/portal/timetable/': 'access',
        '/portal/financial/': 'payment_approved',
    },

    # Warn students this many days before their access or semester ends
    'ACCESS_EXPIRY_WARNING_DAYS': int(os.environ.get('ACCESS_EXPIRY_WARNING_DAYS', '7')),
    'SEMESTER_END_WARNING_DAYS': int(os.environ.get('ACCESS_SEMESTER_END_WARNING_DAYS', '14')),
}


# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.environ.get('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
        # Access decisions and registration outcomes
        'access_audit': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}
