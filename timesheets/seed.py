import json
import logging
from pathlib import Path
from typing import Optional, Union

from .schemas import Category, Project, ProjectFile, Task, Timesheet, User
from .store import AppState

logger = logging.getLogger(__name__)

# Collection name -> record type, in dependency order
SEED_FILES = {
    "users": User,
    "projects": Project,
    "categories": Category,
    "tasks": Task,
    "timesheets": Timesheet,
    "files": ProjectFile,
}


def load_json(base_dir: Path, name: str) -> list:
    path = base_dir / f"{name}.json"
    if not path.exists():
        raise FileNotFoundError(f"{path} not found")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def read_seed_records(directory: Union[str, Path]) -> dict[str, list]:
    """Parse and validate every fixture file in ``directory``."""
    base_dir = Path(directory).resolve()
    records = {}
    for name, model in SEED_FILES.items():
        records[name] = [model.model_validate(item) for item in load_json(base_dir, name)]

    # stored totals are not trusted; they are recomputed from the rows
    records["timesheets"] = [
        t.model_copy(update={"total_hours": sum(sum(e.hours) for e in t.entries)})
        for t in records["timesheets"]
    ]
    return records


def load_seed_data(directory: Union[str, Path], into: Optional[AppState] = None) -> AppState:
    """
    Build an application state from the JSON fixtures in ``directory``.

    With ``into``, fixtures are added to that state instead and records
    whose id already exists there are skipped.
    """
    records = read_seed_records(directory)
    if into is None:
        state = AppState(**records)
        counts = {name: len(items) for name, items in records.items()}
    else:
        state = into
        counts = state.load_records(**records)
    logger.info(
        "Loaded seed data from %s: %s",
        directory, ", ".join(f"{n} {name}" for name, n in counts.items()),
    )
    return state
