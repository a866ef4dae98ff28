"""
Export of rendered article QR codes: image download and printable document.
"""
import os
import logging
import tempfile
import time
import webbrowser
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from django.core.exceptions import SuspiciousFileOperation
from django.template.loader import render_to_string
from django.utils.module_loading import import_string
from django.utils.text import get_valid_filename

from . import conf
from .exceptions import ExportIOFailure, PopupBlocked
from .label_generator import RenderedArtifact

logger = logging.getLogger(__name__)

PRINT_TEMPLATE = 'catalog/qr_code_print.html'
PRINT_DOCUMENT_PREFIX = 'qr-print-'
# Seconds a written print document is kept for the browser
PRINT_DOCUMENT_MAX_AGE = 3600


@dataclass(frozen=True)
class SurfaceResult:
    """Outcome of opening an isolated print surface"""
    opened: bool
    location: Optional[str] = None
    reason: Optional[str] = None


def download_filename(filename_hint: str) -> str:
    """qr-<hint>.png, reduced to a safe file name"""
    return get_valid_filename(f'qr-{filename_hint}.png')


@contextmanager
def _download_handle(directory: Path, filename: str):
    """
    Transient file that becomes `filename` once written.

    Yields an open binary file in `directory`. On normal exit it is moved
    over the target; the temporary file never survives the block.
    """
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.qr-', suffix='.part')
    try:
        with os.fdopen(fd, 'wb') as handle:
            yield handle
        os.replace(tmp_path, directory / filename)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def export_as_file(artifact: RenderedArtifact, filename_hint: str, directory=None) -> Path:
    """
    Save the artifact's image bytes as qr-<filename_hint>.png.

    Args:
        artifact: Rendered QR code
        filename_hint: Usually the article code
        directory: Target directory (defaults to QR_CODE_DOWNLOAD_DIR)

    Returns:
        Path of the written file

    Raises:
        ExportIOFailure: the file could not be written; nothing is left behind
    """
    try:
        filename = download_filename(filename_hint)
    except SuspiciousFileOperation as e:
        raise ExportIOFailure(f"Cannot derive a file name from '{filename_hint}'", cause=e) from e

    target_dir = Path(directory or conf.get_download_dir())
    try:
        image_bytes = artifact.image_bytes
    except ValueError as e:
        raise ExportIOFailure(f'Artifact image is not a valid data URI: {str(e)}', cause=e) from e

    try:
        with _download_handle(target_dir, filename) as handle:
            handle.write(image_bytes)
    except OSError as e:
        raise ExportIOFailure(f'Failed to write {filename} to {target_dir}: {str(e)}', cause=e) from e

    path = target_dir / filename
    logger.info(f"Exported QR code {filename} ({len(image_bytes)} bytes)")
    return path


def build_print_document(artifact: RenderedArtifact, title: str, subtitle: str) -> str:
    """Self-contained HTML page showing the QR code between its title and caption"""
    return render_to_string(PRINT_TEMPLATE, {
        'title': title,
        'subtitle': subtitle,
        'image_uri': artifact.data_uri,
        'image_size': artifact.pixel_size,
        'caption': conf.get_print_caption(),
    })


def _remove_stale_print_documents(max_age=PRINT_DOCUMENT_MAX_AGE):
    """Delete print documents left by earlier calls once the browser has had time to load them"""
    cutoff = time.time() - max_age
    for path in Path(tempfile.gettempdir()).glob(f'{PRINT_DOCUMENT_PREFIX}*.html'):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove stale print document {path}: {str(e)}")


def browser_print_surface(document: str, title: str) -> SurfaceResult:
    """
    Open the document in a new browser tab, which prints it on load.

    The document is written to a temporary .html file that stays in place for
    the browser to read; files older than PRINT_DOCUMENT_MAX_AGE are removed on
    later calls. If the file cannot be written or the browser cannot be started,
    nothing is left behind and an unopened result is returned.
    """
    _remove_stale_print_documents()

    path = None
    try:
        fd, path = tempfile.mkstemp(prefix=PRINT_DOCUMENT_PREFIX, suffix='.html')
        with os.fdopen(fd, 'w', encoding='utf-8') as handle:
            handle.write(document)
    except OSError as e:
        if path and os.path.exists(path):
            os.unlink(path)
        return SurfaceResult(opened=False, reason=f'Cannot write print document: {str(e)}')

    uri = Path(path).as_uri()
    try:
        opened = webbrowser.open_new_tab(uri)
        reason = None if opened else 'No browser available'
    except webbrowser.Error as e:
        opened = False
        reason = str(e)

    if not opened:
        os.unlink(path)
        return SurfaceResult(opened=False, reason=reason)
    return SurfaceResult(opened=True, location=uri)


def export_as_print_document(artifact: RenderedArtifact, title: str, subtitle: str) -> SurfaceResult:
    """
    Open a printable page for the artifact on the configured print surface.

    Raises:
        PopupBlocked: the surface refused to open
    """
    document = build_print_document(artifact, title, subtitle)
    open_surface = import_string(conf.get_print_surface_path())
    result = open_surface(document, f'QR Code - {title}')

    if not result.opened:
        raise PopupBlocked(f'Print window for {title} could not be opened', reason=result.reason)

    logger.info(f"Opened print document for QR code {title}")
    return result
