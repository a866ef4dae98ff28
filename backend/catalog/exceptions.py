"""
Errors raised by the article QR code pipeline (encode -> render -> export).

None of them is fatal to the application: callers recover locally and the
single feature (QR preview, download or print) degrades.
"""


class QRCodeError(Exception):
    """Base class for article QR code failures"""


class InvalidIdentity(QRCodeError):
    """Article identity is missing its id or code"""


class InvalidPayload(QRCodeError):
    """Scanned text is not a well-formed entity payload"""


class RenderFailure(QRCodeError):
    """The payload could not be encoded or rasterized"""

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.cause = cause


class PopupBlocked(QRCodeError):
    """The print surface could not be opened"""

    def __init__(self, message, reason=None):
        super().__init__(message)
        self.reason = reason


class ExportIOFailure(QRCodeError):
    """The downloaded file could not be written or cleaned up"""

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.cause = cause
