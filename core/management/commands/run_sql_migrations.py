from pathlib import Path

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from core.schema import apply_sql_migrations


class Command(BaseCommand):
    help = "Apply raw SQL files from SQL_MIGRATIONS_DIR in filename order, skipping files already recorded."

    def add_arguments(self, parser):
        parser.add_argument(
            "--directory",
            default=None,
            help="Directory holding *.sql files (default: settings.SQL_MIGRATIONS_DIR).",
        )
        parser.add_argument(
            "--database",
            default="default",
            help="Database alias to migrate (default: default).",
        )

    def handle(self, *args, **options):
        directory = Path(options["directory"] or settings.SQL_MIGRATIONS_DIR)
        if not directory.is_dir():
            raise CommandError(f"SQL migrations directory not found: {directory}")

        result = apply_sql_migrations(directory, using=options["database"])

        self.stdout.write(self.style.MIGRATE_HEADING(f"SQL migrations in {directory}"))
        for name in result["skipped"]:
            self.stdout.write(f"  skipped {name}")
        for name in result["applied"]:
            self.stdout.write(self.style.SUCCESS(f"  applied {name}"))
        self.stdout.write(
            self.style.SUCCESS(f"Applied {len(result['applied'])} file(s); skipped {len(result['skipped'])}.")
        )
