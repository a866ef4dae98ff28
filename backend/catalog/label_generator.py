"""
Local QR code generator for article labels
Uses qrcode for the symbol matrix and PIL/Pillow for rasterization
"""
import io
import re
import base64
import logging
from dataclasses import dataclass, replace
from urllib.parse import unquote_to_bytes

import qrcode
from asgiref.sync import sync_to_async
from PIL import Image, ImageColor
from qrcode.exceptions import DataOverflowError

from . import conf
from .exceptions import RenderFailure
from .qr_payload import EncodedPayload

logger = logging.getLogger(__name__)

# Fixed error correction level (~15% recovery). Caps the payload at 2331
# bytes of UTF-8 text (version 40, byte mode).
ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_M
ERROR_CORRECTION_NAME = 'M'
MAX_PAYLOAD_BYTES = 2331

# Pixels per module when the requested width cannot hold the matrix
FALLBACK_SCALE = 4

PNG_MEDIA_TYPE = 'image/png'

_DATA_URI_RE = re.compile(r'^data:(?P<media_type>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<data>.*)$', re.DOTALL)


@dataclass(frozen=True)
class RenderOptions:
    """Rendering parameters for a QR code image"""
    width: int = conf.DEFAULT_WIDTH
    margin: int = conf.DEFAULT_MARGIN
    foreground_color: str = conf.DEFAULT_FOREGROUND
    background_color: str = conf.DEFAULT_BACKGROUND

    def __post_init__(self):
        if int(self.width) <= 0:
            raise ValueError(f'QR code width must be positive, got {self.width}')
        if int(self.margin) < 0:
            raise ValueError(f'QR code margin must not be negative, got {self.margin}')

    @classmethod
    def from_settings(cls, **overrides) -> 'RenderOptions':
        """Options from QR_CODE_* settings, with explicit overrides applied"""
        options = cls(
            width=conf.get_default_width(),
            margin=conf.get_default_margin(),
            foreground_color=conf.get_default_foreground(),
            background_color=conf.get_default_background(),
        )
        overrides = {key: value for key, value in overrides.items() if value is not None}
        return replace(options, **overrides) if overrides else options


@dataclass(frozen=True)
class RenderedArtifact:
    """A rendered QR code image, inlined as a data URI"""
    data_uri: str
    options: RenderOptions
    payload: EncodedPayload
    pixel_size: int

    @property
    def media_type(self) -> str:
        return parse_data_uri(self.data_uri)[0]

    @property
    def image_bytes(self) -> bytes:
        return parse_data_uri(self.data_uri)[1]


def build_data_uri(data: bytes, media_type: str = PNG_MEDIA_TYPE) -> str:
    encoded = base64.b64encode(data).decode('utf-8')
    return f'data:{media_type};base64,{encoded}'


def parse_data_uri(uri: str):
    """
    Split a data URI into its media type and raw bytes.

    Returns:
        (media_type, bytes) tuple

    Raises:
        ValueError: if the URI is not a data URI or its body cannot be decoded
    """
    match = _DATA_URI_RE.match(uri or '')
    if not match:
        raise ValueError('Not a data URI')

    media_type = match.group('media_type') or 'text/plain'
    params = [p for p in match.group('params').split(';') if p]
    data = match.group('data')

    if 'base64' in params:
        try:
            return media_type, base64.b64decode(data, validate=True)
        except ValueError as e:
            raise ValueError(f'Invalid base64 data URI body: {str(e)}') from e
    return media_type, unquote_to_bytes(data)


def _resolve_colors(options: RenderOptions):
    """Return (mode, foreground, background) for the image"""
    try:
        has_alpha = any(
            len(ImageColor.getrgb(color)) == 4
            for color in (options.foreground_color, options.background_color)
        )
        mode = 'RGBA' if has_alpha else 'RGB'
        foreground = ImageColor.getcolor(options.foreground_color, mode)
        background = ImageColor.getcolor(options.background_color, mode)
    except ValueError as e:
        raise RenderFailure(f'Invalid QR code color: {str(e)}', cause=e) from e
    return mode, foreground, background


def _capacity_message(size_bytes):
    return (
        f'Payload of {size_bytes} bytes exceeds QR code capacity '
        f'({MAX_PAYLOAD_BYTES} bytes at level {ERROR_CORRECTION_NAME})'
    )


def _build_matrix(text: str, margin: int):
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECTION,
        box_size=1,
        border=margin,
    )
    # One segment, so capacity is exactly MAX_PAYLOAD_BYTES for any JSON text
    qr.add_data(text, optimize=0)
    qr.make(fit=True)
    # Includes the quiet zone
    return qr.get_matrix()


def generate_qr_code_image(payload: EncodedPayload, options: RenderOptions = None) -> RenderedArtifact:
    """
    Render a payload as a QR code PNG.

    The matrix (quiet zone included) is scaled to exactly options.width pixels
    per side with nearest-neighbour sampling, so modules stay sharp.

    Args:
        payload: Encoded article payload
        options: Rendering parameters (defaults from QR_CODE_* settings)

    Returns:
        RenderedArtifact holding a base64 PNG data URI

    Raises:
        RenderFailure: payload over capacity, invalid colors or imaging error
    """
    options = options or RenderOptions.from_settings()
    mode, foreground, background = _resolve_colors(options)

    size_bytes = len(payload.text.encode('utf-8'))
    if size_bytes > MAX_PAYLOAD_BYTES:
        raise RenderFailure(_capacity_message(size_bytes))

    try:
        matrix = _build_matrix(payload.text, int(options.margin))
    except DataOverflowError as e:
        raise RenderFailure(_capacity_message(size_bytes), cause=e) from e
    except Exception as e:
        raise RenderFailure(f'QR code encoding failed: {str(e)}', cause=e) from e

    modules = len(matrix)
    width = int(options.width)
    size = width if width >= modules else modules * FALLBACK_SCALE

    try:
        mask = Image.new('L', (modules, modules), 0)
        mask.putdata([255 if cell else 0 for row in matrix for cell in row])
        mask = mask.resize((size, size), Image.Resampling.NEAREST)

        img = Image.new(mode, (size, size), background)
        img.paste(foreground, (0, 0, size, size), mask)

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        data_uri = build_data_uri(buffer.getvalue())
        buffer.close()
        img.close()
        mask.close()
    except Exception as e:
        raise RenderFailure(f'QR code rasterization failed: {str(e)}', cause=e) from e

    logger.debug(f"Rendered QR code for article {payload.code} ({modules} modules, {size}px)")
    return RenderedArtifact(
        data_uri=data_uri,
        options=options,
        payload=payload,
        pixel_size=size,
    )


async def render_qr_code(payload: EncodedPayload, options: RenderOptions = None) -> RenderedArtifact:
    """
    Asynchronous variant of generate_qr_code_image().

    Encoding and rasterization run in a worker thread so the event loop is
    not blocked. Concurrent calls are independent; nothing is shared or
    coalesced between them.
    """
    return await sync_to_async(generate_qr_code_image, thread_sensitive=False)(payload, options)
