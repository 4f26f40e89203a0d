import os
from pathlib import Path
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-secret')

DEBUG = os.getenv('DEBUG', '0') == '1'

allowed_env = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1')
ALLOWED_HOSTS = ['*'] if DEBUG else [h.strip() for h in allowed_env.split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'corsheaders',
    'accounts',
    'courses',
    'promotions.apps.PromotionsConfig',
    'attendance.apps.AttendanceConfig',
    'progress',
    'workflows.apps.WorkflowsConfig',
    'legacy_migration',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'planner.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'planner.wsgi.application'

DB_NAME = os.getenv('DB_NAME')
DB_USER = os.getenv('DB_USER')
DB_PASS = os.getenv('DB_PASS')
DB_HOST = os.getenv('DB_HOST')
DB_PORT = os.getenv('DB_PORT', '5432')
# PostgreSQL only when DB env vars are explicitly provided; SQLite otherwise.
if DB_NAME:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': DB_NAME,
            'USER': DB_USER,
            'PASSWORD': DB_PASS,
            'HOST': DB_HOST,
            'PORT': DB_PORT,
            'CONN_MAX_AGE': int(os.getenv('DB_CONN_MAX_AGE', '0')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

AUTH_USER_MODEL = 'accounts.User'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
    ),
    'EXCEPTION_HANDLER': 'planner.exception_handler.planning_exception_handler',
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=int(os.getenv('ACCESS_TOKEN_MINUTES', '60'))),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=1),
    'AUTH_HEADER_TYPES': ('Bearer',),
}

CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = [
    'http://localhost:3000',
    'http://127.0.0.1:3000',
]
cors_env = os.getenv('CORS_ALLOWED_ORIGINS', '')
CORS_ALLOWED_ORIGINS += [h.strip() for h in cors_env.split(',') if h.strip()]
CORS_ALLOW_CREDENTIALS = True

csrf_env = os.getenv('CSRF_TRUSTED_ORIGINS', '')
CSRF_TRUSTED_ORIGINS = [h.strip() for h in csrf_env.split(',') if h.strip()]

# --- Course-progress source ---
# Dotted path of the completion source used by the progress calculator.
# When COMPLETION_SOURCE_URL is set and COMPLETION_SOURCE is left empty the
# HTTP source is used, otherwise course progress is read from the local tables.
COMPLETION_SOURCE = os.getenv('COMPLETION_SOURCE', '')
COMPLETION_SOURCE_URL = os.getenv('COMPLETION_SOURCE_URL', '')
COMPLETION_SOURCE_API_KEY = os.getenv('COMPLETION_SOURCE_API_KEY', '')
COMPLETION_SOURCE_TIMEOUT_SECONDS = float(os.getenv('COMPLETION_SOURCE_TIMEOUT_SECONDS', '5'))

# --- Attendance ---
# Hours after a session's end during which the teacher may overwrite marks.
# Empty means overwrites are always allowed; admins are never limited.
_overwrite_grace = os.getenv('ATTENDANCE_OVERWRITE_GRACE_HOURS', '')
ATTENDANCE_OVERWRITE_GRACE_HOURS = float(_overwrite_grace) if _overwrite_grace else None
ATTENDANCE_FOLLOWUP_GRACE_HOURS = float(os.getenv('ATTENDANCE_FOLLOWUP_GRACE_HOURS', '24'))
ATTENDANCE_RECOMPUTE_ON_MARK = os.getenv('ATTENDANCE_RECOMPUTE_ON_MARK', '1') == '1'
ATTENDANCE_WORKFLOW_INTERVAL_SECONDS = int(os.getenv('ATTENDANCE_WORKFLOW_INTERVAL_SECONDS', '3600'))
LOW_ATTENDANCE_THRESHOLD = float(os.getenv('LOW_ATTENDANCE_THRESHOLD', '0.75'))
CONSECUTIVE_ABSENCE_LIMIT = int(os.getenv('CONSECUTIVE_ABSENCE_LIMIT', '3'))
ATTENDANCE_TREND_PERIOD_DAYS = int(os.getenv('ATTENDANCE_TREND_PERIOD_DAYS', '14'))
# Marks stamped up to this long before the previous run are looked at again.
ATTENDANCE_WORKFLOW_WATERMARK_OVERLAP_SECONDS = int(os.getenv('ATTENDANCE_WORKFLOW_WATERMARK_OVERLAP_SECONDS', '300'))

# Dotted path of a callable notify(recipient_id, event_kind, payload).
NOTIFICATION_SINK = os.getenv('NOTIFICATION_SINK', 'workflows.services.notification_service.notify')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'accounts': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'courses': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'promotions': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'attendance': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'progress': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'workflows': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'legacy_migration': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
