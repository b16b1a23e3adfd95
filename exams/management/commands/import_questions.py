# exams/management/commands/import_questions.py
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from exams.models import Question
from exams.services.importer import ImportRowError, import_questions, read_rows, validate_rows


class Command(BaseCommand):
    help = "Import questions from an .xlsx, .csv or .json file (one question per row)."

    def add_arguments(self, parser):
        parser.add_argument("--file", required=True, help="Path to .xlsx / .csv / .json file")
        parser.add_argument("--sheet", default="0", help="Worksheet name or index (default: first sheet)")
        parser.add_argument("--author", help="Email of the user recorded as created_by")
        parser.add_argument("--reset", action="store_true", help="Delete ALL existing questions before import")
        parser.add_argument("--dry-run", action="store_true", help="Validate only, do not write to DB")

    def handle(self, *args, **opts):
        path = opts["file"]
        self.stdout.write(f"Reading file: {path}")

        author = None
        if opts["author"]:
            author = get_user_model().objects.filter(email__iexact=opts["author"]).first()
            if author is None:
                raise CommandError(f"No user with email {opts['author']}")

        try:
            with open(path, "rb") as fh:
                rows = read_rows(fh, path, sheet=opts["sheet"])
        except OSError as e:
            raise CommandError(f"Failed to open file: {e}")
        except ValueError as e:
            raise CommandError(f"Failed to read file: {e}")

        try:
            if opts["dry_run"]:
                cleaned = validate_rows(rows)
                self.stdout.write(f"Validated {len(cleaned)} question(s). Dry-run complete, no DB changes made.")
                return

            with transaction.atomic():
                if opts["reset"]:
                    self.stdout.write("Purging existing questions...")
                    Question.objects.all().delete()
                created = import_questions(rows, created_by=author)
        except ImportRowError as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(f"Import complete. Created {len(created)} question(s)."))
