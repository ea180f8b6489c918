from pathlib import Path

import pydantic
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from timesheets.errors import TimesheetError
from timesheets.seed import SEED_FILES, load_seed_data
from timesheets.store import AppState, get_app_state, reset_app_state


class Command(BaseCommand):
    help = "Validate the JSON fixtures in the seed directory and load them into the application state."

    def add_arguments(self, parser):
        parser.add_argument(
            "--truncate",
            action="store_true",
            help="Start from an empty state instead of adding to the current one.",
        )
        parser.add_argument(
            "--dir",
            default=str(settings.TIMEPRO_SEED_DIR),
            help="Directory containing JSON files (default: TIMEPRO_SEED_DIR).",
        )

    def handle(self, *args, **options):
        base_dir = Path(options["dir"]).resolve()

        # 1. optional clean
        if options["truncate"]:
            self.stdout.write("Discarding current state…")
            reset_app_state(AppState())

        # 2. validate and load
        try:
            state = get_app_state()
            load_seed_data(base_dir, into=state)
        except FileNotFoundError as exc:
            raise CommandError(str(exc)) from exc
        except (pydantic.ValidationError, TimesheetError) as exc:
            raise CommandError(f"Invalid seed data in {base_dir}: {exc}") from exc

        # 3. report
        totals = {
            "users": len(state.users()),
            "projects": len(state.projects()),
            "categories": len(state.categories()),
            "tasks": len(state.tasks()),
            "timesheets": len(state.timesheets()),
            "files": len(state.files()),
        }
        for name in SEED_FILES:
            self.stdout.write(f"  {name}: {totals[name]}")
        self.stdout.write(self.style.SUCCESS("✅  Seed data loaded successfully"))
