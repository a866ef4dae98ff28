"""
Settings for article QR code generation.

Each value is read from Django settings first, then from the environment,
then falls back to the default. Values are read on every call so that
override_settings() applies.
"""
import os
from django.conf import settings

DEFAULT_WIDTH = 200  # pixels
DEFAULT_MARGIN = 2  # quiet zone, in modules
DEFAULT_FOREGROUND = '#000000'
DEFAULT_BACKGROUND = '#FFFFFF'
DEFAULT_PRINT_CAPTION = 'Scanner ce code pour accéder aux détails'
DEFAULT_PRINT_SURFACE = 'backend.catalog.label_export.browser_print_surface'


def _setting(name, default):
    return getattr(settings, name, os.getenv(name, default))


def get_default_width() -> int:
    return int(_setting('QR_CODE_WIDTH', DEFAULT_WIDTH))


def get_default_margin() -> int:
    return int(_setting('QR_CODE_MARGIN', DEFAULT_MARGIN))


def get_default_foreground() -> str:
    return _setting('QR_CODE_FOREGROUND', DEFAULT_FOREGROUND)


def get_default_background() -> str:
    return _setting('QR_CODE_BACKGROUND', DEFAULT_BACKGROUND)


def get_download_dir() -> str:
    """Directory receiving downloaded QR code images (cwd when unset)"""
    return _setting('QR_CODE_DOWNLOAD_DIR', '') or os.getcwd()


def get_print_caption() -> str:
    return _setting('QR_CODE_PRINT_CAPTION', DEFAULT_PRINT_CAPTION)


def get_print_surface_path() -> str:
    return _setting('QR_CODE_PRINT_SURFACE', DEFAULT_PRINT_SURFACE)
