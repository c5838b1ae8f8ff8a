"""Change-request store.

Change requests live as JSON files below the changes directory, one
record per file:

    {"packageName": "core", "type": "minor", "comment": "Add retries"}

The store only enumerates, parses, writes and deletes these files; what
they mean is decided by the ChangeManager.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .errors import ChangeFileError
from .models import ChangeRequest


class ChangeFiles:
    """Pending change requests under one directory."""

    def __init__(self, folder: Path) -> None:
        self.folder = folder

    def paths(self) -> list[Path]:
        """All change files, sorted for deterministic processing."""
        if not self.folder.is_dir():
            return []
        return sorted(self.folder.rglob("*.json"))

    def load(self) -> list[ChangeRequest]:
        """Parse every change file.

        Raises:
            ChangeFileError: If any file is not valid JSON or misses fields.
        """
        requests: list[ChangeRequest] = []
        for path in self.paths():
            try:
                data = json.loads(path.read_text())
                request = ChangeRequest.model_validate(data)
            except (json.JSONDecodeError, ValidationError) as exc:
                raise ChangeFileError(path, str(exc)) from exc
            requests.append(request.model_copy(update={"source": path}))
        return requests

    def write(self, request: ChangeRequest) -> Path:
        """Persist a new change request as <package>/<timestamp>.json."""
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d-%H-%M-%S-%f")
        path = self.folder / request.package_name / f"{stamp}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = request.model_dump(by_alias=True, exclude_none=True)
        path.write_text(json.dumps(payload, indent=2) + "\n")
        return path

    def delete(self, paths: list[Path], write: bool) -> list[Path]:
        """Delete consumed change files.

        With write False nothing is removed; the files that would be
        deleted are reported instead.
        """
        deleted: list[Path] = []
        for path in sorted(set(paths)):
            if not write:
                print(f"  [dry-run] delete {self._display(path)}")
                continue
            path.unlink(missing_ok=True)
            deleted.append(path)
            print(f"  Deleted {self._display(path)}")
        if write:
            self._prune_empty_dirs()
        return deleted

    def _display(self, path: Path) -> str:
        try:
            return path.relative_to(self.folder).as_posix()
        except ValueError:
            return str(path)

    def _prune_empty_dirs(self) -> None:
        if not self.folder.is_dir():
            return
        for d in sorted(self.folder.rglob("*"), reverse=True):
            if d.is_dir() and not any(d.iterdir()):
                d.rmdir()
