"""
Django settings for the backend project.

Values are read from the environment where deployments need to change them.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-local-development-key')

DEBUG = os.getenv('DJANGO_DEBUG', 'false').lower() == 'true'

ALLOWED_HOSTS = [h for h in os.getenv('DJANGO_ALLOWED_HOSTS', '').split(',') if h]

INSTALLED_APPS = [
    'backend.catalog',
]

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {},
    },
]

DATABASES = {}

USE_TZ = True
TIME_ZONE = os.getenv('DJANGO_TIME_ZONE', 'UTC')

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Article QR codes
QR_CODE_WIDTH = int(os.getenv('QR_CODE_WIDTH', '200'))  # pixels
QR_CODE_MARGIN = int(os.getenv('QR_CODE_MARGIN', '2'))  # modules
QR_CODE_FOREGROUND = os.getenv('QR_CODE_FOREGROUND', '#000000')
QR_CODE_BACKGROUND = os.getenv('QR_CODE_BACKGROUND', '#FFFFFF')
QR_CODE_DOWNLOAD_DIR = os.getenv('QR_CODE_DOWNLOAD_DIR', '')
QR_CODE_PRINT_CAPTION = os.getenv('QR_CODE_PRINT_CAPTION', 'Scanner ce code pour accéder aux détails')
QR_CODE_PRINT_SURFACE = os.getenv(
    'QR_CODE_PRINT_SURFACE',
    'backend.catalog.label_export.browser_print_surface',
)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message}',
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
        'level': 'WARNING',
    },
    'loggers': {
        'backend.catalog': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
