import asyncio
import json

from django.core.management.base import BaseCommand, CommandError

from ...exceptions import ExportIOFailure, InvalidIdentity, PopupBlocked, RenderFailure
from ...label_export import export_as_file, export_as_print_document
from ...label_generator import RenderOptions, render_qr_code
from ...qr_payload import ArticleIdentity, encode


class Command(BaseCommand):
    help = 'Generate QR code images (and optionally print documents) for articles'

    def add_arguments(self, parser):
        parser.add_argument('--id', dest='article_id', help='Article id')
        parser.add_argument('--code', help='Article code')
        parser.add_argument('--designation', default='', help='Article designation')
        parser.add_argument(
            '--articles-file',
            help='JSON file with a list of articles (id, codeArticle, designation)',
        )
        parser.add_argument('--output-dir', help='Directory for the PNG files (default: QR_CODE_DOWNLOAD_DIR)')
        parser.add_argument('--width', type=int, help='Image width in pixels')
        parser.add_argument('--margin', type=int, help='Quiet zone in modules')
        parser.add_argument('--dark', help='Foreground color')
        parser.add_argument('--light', help='Background color')
        parser.add_argument('--print', action='store_true', dest='print_document', help='Open a print document for each article')

    def handle(self, *args, **options):
        identities = self._load_identities(options)

        try:
            render_options = RenderOptions.from_settings(
                width=options['width'],
                margin=options['margin'],
                foreground_color=options['dark'],
                background_color=options['light'],
            )
        except ValueError as e:
            raise CommandError(str(e))

        # Encoding is checked for every article before anything is rendered
        try:
            payloads = [encode(identity) for identity in identities]
        except InvalidIdentity as e:
            raise CommandError(str(e))

        self.stdout.write(f'Generating QR codes for {len(payloads)} article(s)')
        results = asyncio.run(self._render_all(payloads, render_options))

        exported_count = 0
        error_count = 0

        for payload, result in zip(payloads, results):
            if isinstance(result, RenderFailure):
                error_count += 1
                self.stdout.write(self.style.ERROR(f'  ✗ {payload.code}: {str(result)}'))
                continue

            try:
                path = export_as_file(result, payload.code, directory=options['output_dir'])
            except ExportIOFailure as e:
                error_count += 1
                self.stdout.write(self.style.ERROR(f'  ✗ {payload.code}: {str(e)}'))
                continue

            exported_count += 1
            self.stdout.write(f'  ✓ {payload.code} -> {path}')

            if options['print_document']:
                try:
                    export_as_print_document(result, payload.code, payload.designation)
                except PopupBlocked as e:
                    self.stdout.write(self.style.WARNING(f'  - Print skipped for {payload.code}: {e.reason or str(e)}'))

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {exported_count} QR codes exported, {error_count} errors'
        ))

    async def _render_all(self, payloads, render_options):
        tasks = [render_qr_code(payload, render_options) for payload in payloads]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            # Anything other than a render failure is a bug, not a per-article error
            if isinstance(result, BaseException) and not isinstance(result, RenderFailure):
                raise result
        return results

    def _load_identities(self, options):
        if options['articles_file']:
            try:
                with open(options['articles_file'], encoding='utf-8') as handle:
                    records = json.load(handle)
            except (OSError, ValueError) as e:
                raise CommandError(f"Cannot read articles file {options['articles_file']}: {str(e)}")
            if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
                raise CommandError('Articles file must contain a JSON list of objects')
            return [ArticleIdentity.from_mapping(record) for record in records]

        if not options['article_id'] or not options['code']:
            raise CommandError('Provide --id and --code, or --articles-file')
        return [ArticleIdentity(
            id=options['article_id'],
            code=options['code'],
            designation=options['designation'] or '',
        )]
