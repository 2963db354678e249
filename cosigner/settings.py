"""
Django settings for the cosigner project.

Every value can be overridden through the environment.
"""
import os
from datetime import timedelta

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.getenv('SECRET_KEY', 'cosigner-insecure-development-key')

DEBUG = env_bool('DEBUG', False)

ALLOWED_HOSTS = [host for host in os.getenv('ALLOWED_HOSTS', '*').split(',') if host]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_yasg',
    'multisig',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'multisig.middleware.ScopeMiddleware',
]

ROOT_URLCONF = 'cosigner.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
            ],
        },
    },
]

ASGI_APPLICATION = 'cosigner.asgi.application'

if os.getenv('POSTGRES_DB'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('POSTGRES_DB'),
            'USER': os.getenv('POSTGRES_USER', 'postgres'),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD', ''),
            'HOST': os.getenv('POSTGRES_HOST', 'localhost'),
            'PORT': os.getenv('POSTGRES_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.path.join(BASE_DIR, 'db.sqlite3'),
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.AutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

STATIC_URL = '/static/'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'UNAUTHENTICATED_USER': None,
    'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
}

SWAGGER_SETTINGS = {
    'USE_SESSION_AUTH': False,
    'SECURITY_DEFINITIONS': {},
}


# Bitcoin / multisig

BITCOIN_NETWORK = os.getenv('BITCOIN_NETWORK', 'mainnet')

MULTISIG_DEFAULT_SCOPE = os.getenv('MULTISIG_DEFAULT_SCOPE', '0')
MULTISIG_KEY_MATCH_GAP_LIMIT = int(os.getenv('MULTISIG_KEY_MATCH_GAP_LIMIT', 100))
MULTISIG_FINALITY_DEPTH = int(os.getenv('MULTISIG_FINALITY_DEPTH', 6))
MULTISIG_POLL_INTERVAL_UNCONFIRMED = int(os.getenv('MULTISIG_POLL_INTERVAL_UNCONFIRMED', 10))
MULTISIG_POLL_INTERVAL_CONFIRMED = int(os.getenv('MULTISIG_POLL_INTERVAL_CONFIRMED', 60))
MULTISIG_PROPAGATION_DELAY = int(os.getenv('MULTISIG_PROPAGATION_DELAY', 15))
MULTISIG_SYNC_INTERVAL = int(os.getenv('MULTISIG_SYNC_INTERVAL', 30))
MULTISIG_EXPLORER_TIMEOUT = int(os.getenv('MULTISIG_EXPLORER_TIMEOUT', 10))
MULTISIG_AUTO_BROADCAST = env_bool('MULTISIG_AUTO_BROADCAST', False)

if BITCOIN_NETWORK == 'mainnet':
    MULTISIG_BROADCAST_ENDPOINTS = [
        {'name': 'mempool.space', 'kind': 'esplora', 'url': 'https://mempool.space/api'},
        {'name': 'blockstream.info', 'kind': 'esplora', 'url': 'https://blockstream.info/api'},
    ]
    MULTISIG_LOOKUP_ENDPOINTS = MULTISIG_BROADCAST_ENDPOINTS + [
        {'name': 'blockcypher', 'kind': 'blockcypher', 'url': 'https://api.blockcypher.com/v1/btc/main'},
    ]
else:
    MULTISIG_BROADCAST_ENDPOINTS = [
        {'name': 'mempool.space', 'kind': 'esplora', 'url': 'https://mempool.space/testnet/api'},
        {'name': 'blockstream.info', 'kind': 'esplora', 'url': 'https://blockstream.info/testnet/api'},
    ]
    MULTISIG_LOOKUP_ENDPOINTS = MULTISIG_BROADCAST_ENDPOINTS + [
        {'name': 'blockcypher', 'kind': 'blockcypher', 'url': 'https://api.blockcypher.com/v1/btc/test3'},
    ]


# Celery

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_TASK_ALWAYS_EAGER = env_bool('CELERY_TASK_ALWAYS_EAGER', False)
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']

CELERY_BEAT_SCHEDULE = {
    'check_out_of_band_broadcasts': {
        'task': 'multisig.tasks.check_out_of_band_broadcasts',
        'schedule': timedelta(minutes=5),
    },
}


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '[%(asctime)s] %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
        },
        'multisig': {
            'handlers': ['console'],
            'level': 'DEBUG' if DEBUG else 'INFO',
            'propagate': False,
        },
    },
}
