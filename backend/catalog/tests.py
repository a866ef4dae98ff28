"""
Test suite for article QR codes
Tests: payload encoding/decoding, QR rendering, file and print export,
QR session state, generate_article_qr command
"""
import io
import json
import os
import asyncio
import tempfile
from pathlib import Path
from unittest import mock

import zxingcpp
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, override_settings
from PIL import Image, ImageOps

from backend.catalog.checks import check_qr_code_settings
from backend.catalog.exceptions import (
    ExportIOFailure, InvalidIdentity, InvalidPayload, PopupBlocked, RenderFailure,
)
from backend.catalog.label_export import (
    PRINT_DOCUMENT_MAX_AGE, PRINT_DOCUMENT_PREFIX,
    SurfaceResult, browser_print_surface, build_print_document,
    download_filename, export_as_file, export_as_print_document,
)
from backend.catalog.label_generator import (
    FALLBACK_SCALE, MAX_PAYLOAD_BYTES, RenderOptions, generate_qr_code_image, parse_data_uri,
    render_qr_code,
)
from backend.catalog.qr_payload import (
    ArticleIdentity, decode_payload, encode, parse_scanned_article,
)
from backend.catalog.qr_session import ArticleQRCodeSession

CERAMIC_TILE = ArticleIdentity(id='42', code='CER-100', designation='Ceramic Tile 30x30')

# Large enough to overflow a version 40 symbol at level M
OVERSIZED_DESIGNATION = 'x' * 2400

opened_documents = []


def recording_surface(document, title):
    """Print surface that always opens and remembers what it was given"""
    opened_documents.append((title, document))
    return SurfaceResult(opened=True, location='memory://print')


def blocked_surface(document, title):
    return SurfaceResult(opened=False, reason='Popup blocked by browser')


def scan(artifact):
    """Decode the QR code in an artifact image, like a handheld scanner would"""
    image = Image.open(io.BytesIO(artifact.image_bytes)).convert('L')
    image = ImageOps.expand(image, border=40, fill=255)
    result = zxingcpp.read_barcode(image)
    return result.text if result else None


class TempDirMixin:
    def make_temp_dir(self):
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        return Path(temp_dir.name)


class PayloadEncoderTests(SimpleTestCase):
    """Test article payload encoding"""

    def test_encode_article(self):
        """Test payload text for a typical article"""
        payload = encode(CERAMIC_TILE)
        self.assertEqual(
            payload.text,
            '{"id":"42","code":"CER-100","name":"Ceramic Tile 30x30","type":"article"}'
        )
        self.assertEqual(payload.as_dict(), {
            'id': '42', 'code': 'CER-100', 'name': 'Ceramic Tile 30x30', 'type': 'article',
        })

    def test_encode_is_deterministic(self):
        """Test same identity gives byte-identical payloads"""
        self.assertEqual(
            encode(CERAMIC_TILE).text.encode('utf-8'),
            encode(ArticleIdentity(id='42', code='CER-100', designation='Ceramic Tile 30x30')).text.encode('utf-8'),
        )

    def test_empty_id_rejected(self):
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity(id='', code='A1', designation='x'))

    def test_empty_code_rejected(self):
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity(id='1', code='', designation='x'))

    def test_missing_fields_rejected(self):
        """Test undefined id or code is rejected like an empty one"""
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity(id=None, code='A1'))
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity(id='1', code=None))
        with self.assertRaises(InvalidIdentity):
            encode(None)

    def test_non_string_fields_rejected(self):
        """Test numeric catalog values are rejected instead of encoded as JSON numbers"""
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity.from_mapping({'id': 42, 'codeArticle': 'CER-100', 'designation': 'x'}))
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity(id='42', code=100))
        with self.assertRaises(InvalidIdentity):
            encode(ArticleIdentity(id='42', code='CER-100', designation=30))

    def test_empty_designation_kept(self):
        """Test empty designation is encoded as an empty string, not omitted"""
        payload = encode(ArticleIdentity(id='1', code='A1', designation=''))
        self.assertEqual(decode_payload(payload.text)['name'], '')

    def test_none_designation_encoded_as_empty(self):
        payload = encode(ArticleIdentity(id='1', code='A1', designation=None))
        self.assertIn('"name":""', payload.text)

    def test_round_trip(self):
        """Test decoding recovers identity fields exactly"""
        identities = [
            CERAMIC_TILE,
            ArticleIdentity(id='007', code='0042', designation='  padded  '),
            ArticleIdentity(id='a-b', code='Ç-é', designation='Carrelage "grès" 60×60 \\ nouveau'),
            ArticleIdentity(id='9', code='X', designation='ligne 1\nligne 2'),
        ]
        for identity in identities:
            record = decode_payload(encode(identity).text)
            self.assertEqual(record['type'], 'article')
            self.assertEqual(record['id'], identity.id)
            self.assertEqual(record['code'], identity.code)
            self.assertEqual(record['name'], identity.designation)

    def test_non_ascii_not_escaped(self):
        payload = encode(ArticleIdentity(id='1', code='É-1', designation='Lavabo blanc'))
        self.assertIn('É-1', payload.text)

    def test_identity_from_catalog_record(self):
        identity = ArticleIdentity.from_mapping({
            'id': 'abc', 'codeArticle': 'CER-100', 'designation': 'Ceramic Tile 30x30', 'categorie': 'Sol',
        })
        self.assertEqual(identity, ArticleIdentity(id='abc', code='CER-100', designation='Ceramic Tile 30x30'))

    def test_payload_identity(self):
        self.assertEqual(encode(CERAMIC_TILE).identity, CERAMIC_TILE)


class ScannedPayloadTests(SimpleTestCase):
    """Test decoding of scanner input"""

    def test_parse_article(self):
        identity = parse_scanned_article(encode(CERAMIC_TILE).text)
        self.assertEqual(identity, CERAMIC_TILE)

    def test_other_entity_kind_ignored(self):
        text = json.dumps({'id': '3', 'code': 'SUP-1', 'name': 'Fournisseur', 'type': 'supplier'})
        self.assertIsNone(parse_scanned_article(text))

    def test_invalid_json(self):
        with self.assertRaises(InvalidPayload):
            decode_payload('CER-100')

    def test_not_an_object(self):
        with self.assertRaises(InvalidPayload):
            decode_payload('["42", "CER-100"]')

    def test_missing_field(self):
        with self.assertRaises(InvalidPayload):
            decode_payload('{"id":"42","code":"CER-100","type":"article"}')

    def test_numeric_field_rejected(self):
        with self.assertRaises(InvalidPayload):
            decode_payload('{"id":42,"code":"CER-100","name":"x","type":"article"}')


class RenderOptionsTests(SimpleTestCase):

    def test_defaults(self):
        options = RenderOptions()
        self.assertEqual(options.width, 200)
        self.assertEqual(options.margin, 2)
        self.assertEqual(options.foreground_color, '#000000')
        self.assertEqual(options.background_color, '#FFFFFF')

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            RenderOptions(width=0)
        with self.assertRaises(ValueError):
            RenderOptions(margin=-1)

    @override_settings(QR_CODE_WIDTH=320, QR_CODE_MARGIN=4)
    def test_from_settings(self):
        options = RenderOptions.from_settings()
        self.assertEqual(options.width, 320)
        self.assertEqual(options.margin, 4)

    def test_from_settings_overrides(self):
        """Test explicit values win and None means 'use the setting'"""
        options = RenderOptions.from_settings(width=150, margin=None)
        self.assertEqual(options.width, 150)
        self.assertEqual(options.margin, 2)


class QRRendererTests(SimpleTestCase):
    """Test QR code image generation"""

    def test_default_image(self):
        """Test default artifact is a 200x200 black on white PNG"""
        artifact = generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions())
        self.assertTrue(artifact.data_uri.startswith('data:image/png;base64,'))
        self.assertEqual(artifact.media_type, 'image/png')
        self.assertEqual(artifact.pixel_size, 200)
        self.assertEqual(artifact.options, RenderOptions())

        image = Image.open(io.BytesIO(artifact.image_bytes))
        self.assertEqual(image.format, 'PNG')
        self.assertEqual(image.size, (200, 200))
        self.assertEqual(image.mode, 'RGB')
        # Quiet zone corner is background; only the two colors are used
        self.assertEqual(image.getpixel((0, 0)), (255, 255, 255))
        self.assertEqual(set(image.getdata()), {(0, 0, 0), (255, 255, 255)})

    def test_scanned_payload(self):
        """Test scanning the rendered image yields the article record"""
        artifact = generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions())
        self.assertEqual(json.loads(scan(artifact)), {
            'type': 'article', 'id': '42', 'code': 'CER-100', 'name': 'Ceramic Tile 30x30',
        })

    def test_render_is_deterministic(self):
        payload = encode(CERAMIC_TILE)
        self.assertEqual(
            generate_qr_code_image(payload, RenderOptions()).data_uri,
            generate_qr_code_image(payload, RenderOptions()).data_uri,
        )

    def test_capacity_exceeded(self):
        """Test oversized payload fails instead of producing a truncated image"""
        payload = encode(ArticleIdentity(id='1', code='BIG', designation=OVERSIZED_DESIGNATION))
        with self.assertRaises(RenderFailure) as ctx:
            generate_qr_code_image(payload, RenderOptions())
        self.assertIn(f'exceeds QR code capacity ({MAX_PAYLOAD_BYTES} bytes', str(ctx.exception))

    def test_capacity_boundary(self):
        """Test a payload of exactly the capacity renders and one more byte fails"""
        base = len(encode(ArticleIdentity(id='1', code='B', designation='')).text.encode('utf-8'))
        fitting = encode(ArticleIdentity(id='1', code='B', designation='x' * (MAX_PAYLOAD_BYTES - base)))
        self.assertEqual(len(fitting.text.encode('utf-8')), MAX_PAYLOAD_BYTES)
        artifact = generate_qr_code_image(fitting, RenderOptions(width=400))
        self.assertEqual(artifact.pixel_size, 400)

        over = encode(ArticleIdentity(id='1', code='B', designation='x' * (MAX_PAYLOAD_BYTES - base + 1)))
        with self.assertRaises(RenderFailure):
            generate_qr_code_image(over, RenderOptions())

    def test_multibyte_capacity(self):
        """Test capacity is counted in UTF-8 bytes, not characters"""
        payload = encode(ArticleIdentity(id='1', code='B', designation='é' * 1200))
        with self.assertRaises(RenderFailure):
            generate_qr_code_image(payload, RenderOptions())

    def test_width_smaller_than_matrix(self):
        """Test tiny width falls back to a fixed scale per module"""
        artifact = generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions(width=10, margin=0))
        self.assertEqual(artifact.pixel_size % FALLBACK_SCALE, 0)
        self.assertGreater(artifact.pixel_size, 10)

    def test_custom_colors(self):
        artifact = generate_qr_code_image(
            encode(CERAMIC_TILE),
            RenderOptions(foreground_color='#1F3A93', background_color='#FFFFFF00'),
        )
        image = Image.open(io.BytesIO(artifact.image_bytes))
        self.assertEqual(image.mode, 'RGBA')
        self.assertEqual(image.getpixel((0, 0)), (255, 255, 255, 0))
        self.assertIn((0x1F, 0x3A, 0x93, 255), set(image.getdata()))

    def test_invalid_color(self):
        with self.assertRaises(RenderFailure):
            generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions(foreground_color='not-a-color'))

    def test_margin_option(self):
        """Test a wider quiet zone leaves a wider blank border"""
        artifact = generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions(width=400, margin=10))
        image = Image.open(io.BytesIO(artifact.image_bytes))
        for offset in range(0, 40):
            self.assertEqual(image.getpixel((offset, offset)), (255, 255, 255))

    async def test_async_render(self):
        artifact = await render_qr_code(encode(CERAMIC_TILE), RenderOptions())
        self.assertEqual(artifact.payload.code, 'CER-100')

    async def test_concurrent_renders_are_independent(self):
        first = ArticleIdentity(id='1', code='A-1', designation='Premier')
        second = ArticleIdentity(id='2', code='B-2', designation='Second')
        artifacts = await asyncio.gather(
            render_qr_code(encode(first), RenderOptions()),
            render_qr_code(encode(second), RenderOptions()),
        )
        self.assertEqual([a.payload.identity for a in artifacts], [first, second])
        self.assertNotEqual(artifacts[0].data_uri, artifacts[1].data_uri)

    async def test_async_render_failure(self):
        payload = encode(ArticleIdentity(id='1', code='BIG', designation=OVERSIZED_DESIGNATION))
        with self.assertRaises(RenderFailure):
            await render_qr_code(payload, RenderOptions())


class DataURITests(SimpleTestCase):

    def test_percent_encoded(self):
        self.assertEqual(parse_data_uri('data:text/plain,hello%20world'), ('text/plain', b'hello world'))

    def test_default_media_type(self):
        self.assertEqual(parse_data_uri('data:,x')[0], 'text/plain')

    def test_invalid(self):
        with self.assertRaises(ValueError):
            parse_data_uri('https://example.com/qr.png')
        with self.assertRaises(ValueError):
            parse_data_uri('data:image/png;base64,@@@')


class FileExportTests(TempDirMixin, SimpleTestCase):
    """Test QR code download"""

    def setUp(self):
        self.artifact = generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions())
        self.directory = self.make_temp_dir()

    def test_export_file(self):
        path = export_as_file(self.artifact, 'CER-100', directory=self.directory)
        self.assertEqual(path.name, 'qr-CER-100.png')
        self.assertEqual(path.read_bytes(), self.artifact.image_bytes)

    def test_export_twice(self):
        """Test repeated exports give the same bytes and leave no temporary files"""
        first = export_as_file(self.artifact, 'CER-100', directory=self.directory).read_bytes()
        second = export_as_file(self.artifact, 'CER-100', directory=self.directory).read_bytes()
        self.assertEqual(first, second)
        self.assertEqual(os.listdir(self.directory), ['qr-CER-100.png'])

    def test_default_directory_from_settings(self):
        with override_settings(QR_CODE_DOWNLOAD_DIR=str(self.directory)):
            path = export_as_file(self.artifact, 'CER-100')
        self.assertEqual(path.parent, self.directory)

    def test_missing_directory(self):
        missing = self.directory / 'missing'
        with self.assertRaises(ExportIOFailure):
            export_as_file(self.artifact, 'CER-100', directory=missing)
        self.assertFalse(missing.exists())

    def test_failed_write_leaves_nothing(self):
        with mock.patch('backend.catalog.label_export.os.replace', side_effect=OSError('disk full')):
            with self.assertRaises(ExportIOFailure) as ctx:
                export_as_file(self.artifact, 'CER-100', directory=self.directory)
        self.assertIsInstance(ctx.exception.cause, OSError)
        self.assertEqual(os.listdir(self.directory), [])

    def test_unsafe_code_in_filename(self):
        self.assertEqual(download_filename('../CER 100'), 'qr-..CER_100.png')
        path = export_as_file(self.artifact, '../CER 100', directory=self.directory)
        self.assertEqual(path.parent, self.directory)


class PrintExportTests(TempDirMixin, SimpleTestCase):
    """Test printable QR code document"""

    def setUp(self):
        self.artifact = generate_qr_code_image(encode(CERAMIC_TILE), RenderOptions())
        opened_documents.clear()

    def test_document_content(self):
        document = build_print_document(self.artifact, 'CER-100', 'Ceramic Tile 30x30')
        self.assertIn('<title>QR Code - CER-100</title>', document)
        self.assertIn('<h2>CER-100</h2>', document)
        self.assertIn('<strong>Ceramic Tile 30x30</strong>', document)
        self.assertIn(f'src="{self.artifact.data_uri}"', document)
        self.assertIn('Scanner ce code pour accéder aux détails', document)
        self.assertIn('window.print()', document)

    def test_document_escapes_text(self):
        document = build_print_document(self.artifact, 'CER-100', '<script>alert(1)</script>')
        self.assertNotIn('<script>alert(1)</script>', document)
        self.assertIn('&lt;script&gt;', document)

    @override_settings(QR_CODE_PRINT_CAPTION='Scan me')
    def test_caption_setting(self):
        self.assertIn('Scan me', build_print_document(self.artifact, 'CER-100', ''))

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.tests.recording_surface')
    def test_print_opens_surface(self):
        result = export_as_print_document(self.artifact, 'CER-100', 'Ceramic Tile 30x30')
        self.assertTrue(result.opened)
        self.assertEqual(len(opened_documents), 1)
        title, document = opened_documents[0]
        self.assertEqual(title, 'QR Code - CER-100')
        self.assertIn('<h2>CER-100</h2>', document)

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.tests.blocked_surface')
    def test_print_blocked(self):
        with self.assertRaises(PopupBlocked) as ctx:
            export_as_print_document(self.artifact, 'CER-100', 'Ceramic Tile 30x30')
        self.assertEqual(ctx.exception.reason, 'Popup blocked by browser')

    def test_browser_surface_opened(self):
        with mock.patch('backend.catalog.label_export.webbrowser.open_new_tab', return_value=True) as open_tab:
            result = browser_print_surface('<html>doc</html>', 'QR Code - CER-100')
        self.assertTrue(result.opened)
        open_tab.assert_called_once_with(result.location)
        path = Path(open_tab.call_args[0][0].replace('file://', '', 1))
        self.addCleanup(path.unlink)
        self.assertEqual(path.read_text(encoding='utf-8'), '<html>doc</html>')

    def test_browser_surface_unavailable(self):
        """Test no browser gives an unopened result and removes the document"""
        with mock.patch('backend.catalog.label_export.webbrowser.open_new_tab', return_value=False) as open_tab:
            result = browser_print_surface('<html>doc</html>', 'QR Code - CER-100')
        self.assertFalse(result.opened)
        self.assertIsNotNone(result.reason)
        path = Path(open_tab.call_args[0][0].replace('file://', '', 1))
        self.assertFalse(path.exists())

    def test_browser_surface_error(self):
        import webbrowser
        with mock.patch(
            'backend.catalog.label_export.webbrowser.open_new_tab',
            side_effect=webbrowser.Error('could not locate runnable browser'),
        ):
            result = browser_print_surface('<html>doc</html>', 'QR Code - CER-100')
        self.assertFalse(result.opened)
        self.assertIn('runnable browser', result.reason)

    def test_browser_surface_write_failure(self):
        """Test a document that cannot be written gives an unopened result"""
        with mock.patch(
            'backend.catalog.label_export.tempfile.mkstemp',
            side_effect=OSError('No space left on device'),
        ), mock.patch('backend.catalog.label_export.webbrowser.open_new_tab') as open_tab:
            result = browser_print_surface('<html>doc</html>', 'QR Code - CER-100')
        self.assertFalse(result.opened)
        self.assertIn('No space left on device', result.reason)
        open_tab.assert_not_called()

    def test_browser_surface_removes_stale_documents(self):
        """Test documents from earlier prints are removed once old, recent ones are kept"""
        fd, stale = tempfile.mkstemp(prefix=PRINT_DOCUMENT_PREFIX, suffix='.html')
        os.close(fd)
        old = os.path.getmtime(stale) - PRINT_DOCUMENT_MAX_AGE - 60
        os.utime(stale, (old, old))
        fd, recent = tempfile.mkstemp(prefix=PRINT_DOCUMENT_PREFIX, suffix='.html')
        os.close(fd)
        self.addCleanup(lambda: os.path.exists(recent) and os.unlink(recent))

        with mock.patch('backend.catalog.label_export.webbrowser.open_new_tab', return_value=True) as open_tab:
            result = browser_print_surface('<html>doc</html>', 'QR Code - CER-100')
        self.addCleanup(Path(open_tab.call_args[0][0].replace('file://', '', 1)).unlink)

        self.assertTrue(result.opened)
        self.assertFalse(os.path.exists(stale))
        self.assertTrue(os.path.exists(recent))


class QRSessionTests(TempDirMixin, SimpleTestCase):
    """Test QR code session state for an article view"""

    async def test_closed_view_does_not_render(self):
        renderer = mock.AsyncMock()
        session = ArticleQRCodeSession(renderer=renderer)
        self.assertIsNone(await session.refresh())
        renderer.assert_not_called()

    async def test_refresh_sets_artifact(self):
        session = ArticleQRCodeSession(options=RenderOptions())
        session.open(CERAMIC_TILE)
        artifact = await session.refresh()
        self.assertIs(session.artifact, artifact)
        self.assertEqual(artifact.payload.identity, CERAMIC_TILE)

    async def test_invalid_identity_raised_before_render(self):
        renderer = mock.AsyncMock()
        session = ArticleQRCodeSession(renderer=renderer)
        session.open(ArticleIdentity(id='', code='A1', designation='x'))
        with self.assertRaises(InvalidIdentity):
            await session.refresh()
        renderer.assert_not_called()

    async def test_render_failure_leaves_no_artifact(self):
        session = ArticleQRCodeSession()
        session.open(ArticleIdentity(id='1', code='BIG', designation=OVERSIZED_DESIGNATION))
        with self.assertLogs('backend.catalog.qr_session', level='ERROR'):
            self.assertIsNone(await session.refresh())
        self.assertIsNone(session.artifact)
        self.assertIsInstance(session.last_error, RenderFailure)

    async def test_stale_render_discarded(self):
        """Test only the latest article's QR code is kept when renders overlap"""
        first_started = asyncio.Event()
        release_first = asyncio.Event()

        async def renderer(payload, options):
            if payload.article_id == '1':
                first_started.set()
                await release_first.wait()
            return await render_qr_code(payload, options)

        session = ArticleQRCodeSession(renderer=renderer)
        session.open(ArticleIdentity(id='1', code='A-1', designation='Premier'))
        first = asyncio.ensure_future(session.refresh())
        await first_started.wait()

        session.open(ArticleIdentity(id='2', code='B-2', designation='Second'))
        second = await session.refresh()
        release_first.set()

        self.assertIsNone(await first)
        self.assertIs(session.artifact, second)
        self.assertEqual(session.artifact.payload.code, 'B-2')

    async def test_closed_while_rendering(self):
        release = asyncio.Event()

        async def renderer(payload, options):
            await release.wait()
            return await render_qr_code(payload, options)

        session = ArticleQRCodeSession(renderer=renderer)
        session.open(CERAMIC_TILE)
        pending = asyncio.ensure_future(session.refresh())
        await asyncio.sleep(0)
        session.close()
        release.set()
        self.assertIsNone(await pending)
        self.assertIsNone(session.artifact)

    async def test_download(self):
        directory = self.make_temp_dir()
        session = ArticleQRCodeSession()
        self.assertIsNone(session.download(directory=directory))

        session.open(CERAMIC_TILE)
        await session.refresh()
        path = session.download(directory=directory)
        self.assertEqual(path, directory / 'qr-CER-100.png')

    async def test_download_failure_is_reported(self):
        session = ArticleQRCodeSession()
        session.open(CERAMIC_TILE)
        await session.refresh()
        with self.assertLogs('backend.catalog.qr_session', level='WARNING'):
            self.assertIsNone(session.download(directory=self.make_temp_dir() / 'missing'))
        self.assertIsInstance(session.last_error, ExportIOFailure)
        self.assertIsNotNone(session.artifact)

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.tests.recording_surface')
    async def test_print(self):
        opened_documents.clear()
        session = ArticleQRCodeSession()
        self.assertFalse(session.print_label())

        session.open(CERAMIC_TILE)
        await session.refresh()
        self.assertTrue(session.print_label())
        self.assertIn('<strong>Ceramic Tile 30x30</strong>', opened_documents[-1][1])

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.tests.blocked_surface')
    async def test_print_blocked(self):
        session = ArticleQRCodeSession()
        session.open(CERAMIC_TILE)
        await session.refresh()
        with self.assertLogs('backend.catalog.qr_session', level='WARNING'):
            self.assertFalse(session.print_label())
        self.assertIsInstance(session.last_error, PopupBlocked)

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.label_export.browser_print_surface')
    async def test_print_document_not_written(self):
        """Test a print document that cannot be written is reported, not raised"""
        session = ArticleQRCodeSession()
        session.open(CERAMIC_TILE)
        await session.refresh()
        with mock.patch(
            'backend.catalog.label_export.tempfile.mkstemp',
            side_effect=OSError('No space left on device'),
        ), self.assertLogs('backend.catalog.qr_session', level='WARNING'):
            self.assertFalse(session.print_label())
        self.assertIsInstance(session.last_error, PopupBlocked)
        self.assertIn('No space left on device', session.last_error.reason)


class GenerateArticleQRCommandTests(TempDirMixin, SimpleTestCase):
    """Test generate_article_qr management command"""

    def setUp(self):
        self.directory = self.make_temp_dir()

    def test_single_article(self):
        out = io.StringIO()
        call_command(
            'generate_article_qr', '--id', '42', '--code', 'CER-100',
            '--designation', 'Ceramic Tile 30x30', '--output-dir', str(self.directory),
            stdout=out,
        )
        path = self.directory / 'qr-CER-100.png'
        self.assertTrue(path.exists())
        self.assertIn('✓ CER-100', out.getvalue())
        self.assertIn('1 QR codes exported, 0 errors', out.getvalue())

    def test_render_options(self):
        call_command(
            'generate_article_qr', '--id', '42', '--code', 'CER-100',
            '--output-dir', str(self.directory), '--width', '300', '--margin', '4',
            stdout=io.StringIO(),
        )
        with Image.open(self.directory / 'qr-CER-100.png') as image:
            self.assertEqual(image.size, (300, 300))

    def test_articles_file(self):
        """Test batch generation continues past an article that cannot be rendered"""
        articles_file = self.directory / 'articles.json'
        articles_file.write_text(json.dumps([
            {'id': '42', 'codeArticle': 'CER-100', 'designation': 'Ceramic Tile 30x30'},
            {'id': '43', 'codeArticle': 'BIG-1', 'designation': OVERSIZED_DESIGNATION},
            {'id': '44', 'codeArticle': 'LAV-200', 'designation': 'Lavabo'},
        ]), encoding='utf-8')

        out = io.StringIO()
        call_command(
            'generate_article_qr', '--articles-file', str(articles_file),
            '--output-dir', str(self.directory), stdout=out,
        )
        self.assertTrue((self.directory / 'qr-CER-100.png').exists())
        self.assertTrue((self.directory / 'qr-LAV-200.png').exists())
        self.assertFalse((self.directory / 'qr-BIG-1.png').exists())
        self.assertIn('✗ BIG-1', out.getvalue())
        self.assertIn('2 QR codes exported, 1 errors', out.getvalue())

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.tests.blocked_surface')
    def test_print_blocked_is_reported(self):
        out = io.StringIO()
        call_command(
            'generate_article_qr', '--id', '42', '--code', 'CER-100',
            '--output-dir', str(self.directory), '--print', stdout=out,
        )
        self.assertIn('Print skipped for CER-100', out.getvalue())
        self.assertTrue((self.directory / 'qr-CER-100.png').exists())

    def test_missing_code(self):
        with self.assertRaises(CommandError):
            call_command('generate_article_qr', '--id', '42', stdout=io.StringIO())

    def test_invalid_identity_in_file(self):
        articles_file = self.directory / 'articles.json'
        articles_file.write_text(json.dumps([{'id': '42', 'codeArticle': ''}]), encoding='utf-8')
        with self.assertRaises(CommandError):
            call_command('generate_article_qr', '--articles-file', str(articles_file), stdout=io.StringIO())

    def test_numeric_id_in_file(self):
        articles_file = self.directory / 'articles.json'
        articles_file.write_text(json.dumps([{'id': 42, 'codeArticle': 'CER-100'}]), encoding='utf-8')
        with self.assertRaises(CommandError):
            call_command('generate_article_qr', '--articles-file', str(articles_file), stdout=io.StringIO())

    def test_unreadable_file(self):
        with self.assertRaises(CommandError):
            call_command(
                'generate_article_qr', '--articles-file', str(self.directory / 'missing.json'),
                stdout=io.StringIO(),
            )

    def test_invalid_width(self):
        with self.assertRaises(CommandError):
            call_command(
                'generate_article_qr', '--id', '42', '--code', 'CER-100', '--width', '0',
                stdout=io.StringIO(),
            )


class QRSettingsCheckTests(SimpleTestCase):
    """Test system checks for QR code settings"""

    def test_default_settings_pass(self):
        self.assertEqual(check_qr_code_settings(), [])

    @override_settings(QR_CODE_WIDTH=0, QR_CODE_MARGIN='two')
    def test_invalid_sizes(self):
        ids = [error.id for error in check_qr_code_settings()]
        self.assertEqual(ids, ['catalog.E001', 'catalog.E001'])

    @override_settings(QR_CODE_FOREGROUND='ink')
    def test_invalid_color(self):
        ids = [error.id for error in check_qr_code_settings()]
        self.assertEqual(ids, ['catalog.E002'])

    @override_settings(QR_CODE_BACKGROUND=None)
    def test_missing_color(self):
        ids = [error.id for error in check_qr_code_settings()]
        self.assertEqual(ids, ['catalog.E002'])

    @override_settings(QR_CODE_PRINT_SURFACE='backend.catalog.label_export.missing_surface')
    def test_unknown_print_surface(self):
        ids = [error.id for error in check_qr_code_settings()]
        self.assertEqual(ids, ['catalog.E003'])
