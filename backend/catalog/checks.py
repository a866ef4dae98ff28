"""
System checks for QR code settings, run by `manage.py check` and at startup
"""
from django.core.checks import Error, register
from django.utils.module_loading import import_string
from PIL import ImageColor

from . import conf


@register()
def check_qr_code_settings(app_configs=None, **kwargs):
    errors = []

    for name, getter, minimum in (
        ('QR_CODE_WIDTH', conf.get_default_width, 1),
        ('QR_CODE_MARGIN', conf.get_default_margin, 0),
    ):
        try:
            value = getter()
        except (TypeError, ValueError):
            errors.append(Error(f'{name} must be an integer', id='catalog.E001'))
            continue
        if value < minimum:
            errors.append(Error(f'{name} must be at least {minimum}, got {value}', id='catalog.E001'))

    for name, getter in (
        ('QR_CODE_FOREGROUND', conf.get_default_foreground),
        ('QR_CODE_BACKGROUND', conf.get_default_background),
    ):
        try:
            ImageColor.getrgb(getter())
        except (AttributeError, TypeError, ValueError):
            errors.append(Error(f'{name} is not a valid color: {getter()!r}', id='catalog.E002'))

    surface_path = conf.get_print_surface_path()
    try:
        import_string(surface_path)
    except ImportError:
        errors.append(Error(
            f'QR_CODE_PRINT_SURFACE cannot be imported: {surface_path}',
            hint='Use a dotted path to a callable (document, title) -> SurfaceResult.',
            id='catalog.E003',
        ))

    return errors
