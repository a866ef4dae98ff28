"""
QR code session for a single article view.

Tracks which article is shown and whether the view is open, renders the
QR code while it is, and keeps failures of the QR feature local: a failed
render leaves no artifact, a failed download or print is reported and
nothing else is affected.
"""
import logging
from pathlib import Path
from typing import Optional

from .exceptions import ExportIOFailure, PopupBlocked, QRCodeError, RenderFailure
from .label_export import export_as_file, export_as_print_document
from .label_generator import RenderOptions, RenderedArtifact, render_qr_code
from .qr_payload import ArticleIdentity, encode

logger = logging.getLogger(__name__)


class ArticleQRCodeSession:
    """QR code state for the article currently displayed"""

    def __init__(self, options: RenderOptions = None, renderer=render_qr_code):
        self.options = options
        self.renderer = renderer
        self.identity: Optional[ArticleIdentity] = None
        self.visible = False
        self.artifact: Optional[RenderedArtifact] = None
        self.last_error: Optional[QRCodeError] = None

    def open(self, identity: ArticleIdentity):
        """Show the view for an article. The previous artifact is dropped."""
        self.identity = identity
        self.visible = True
        self.artifact = None
        self.last_error = None

    def close(self):
        self.visible = False
        self.artifact = None

    async def refresh(self) -> Optional[RenderedArtifact]:
        """
        Render the QR code for the current article.

        Does nothing unless the view is open with an article. A result that
        arrives after the article changed is discarded.

        Raises:
            InvalidIdentity: before any rendering starts
        """
        if not self.visible or self.identity is None:
            return None

        requested = self.identity
        payload = encode(requested)
        options = self.options or RenderOptions.from_settings()

        try:
            artifact = await self.renderer(payload, options)
        except RenderFailure as e:
            logger.error(f"QR code generation failed for article {requested.code}: {str(e)}", exc_info=True)
            if self.identity == requested:
                self.artifact = None
                self.last_error = e
            return None

        if self.identity != requested or not self.visible:
            logger.debug(f"Discarding stale QR code for article {requested.code}")
            return None

        self.artifact = artifact
        self.last_error = None
        return artifact

    def download(self, directory=None) -> Optional[Path]:
        """Save the current QR code as qr-<code>.png; None if nothing was saved"""
        if self.artifact is None:
            return None
        try:
            return export_as_file(self.artifact, self.artifact.payload.code, directory=directory)
        except ExportIOFailure as e:
            logger.warning(f"QR code download failed for article {self.artifact.payload.code}: {str(e)}")
            self.last_error = e
            return None

    def print_label(self) -> bool:
        """Open the print document; False if there is no QR code or the window was blocked"""
        if self.artifact is None:
            return False
        payload = self.artifact.payload
        try:
            export_as_print_document(self.artifact, payload.code, payload.designation)
        except PopupBlocked as e:
            logger.warning(f"Print window blocked for article {payload.code}: {e.reason or str(e)}")
            self.last_error = e
            return False
        return True
