"""Filesystem helpers for n8n self-hoster."""

import logging
import os
import shutil
import sys
import tempfile
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from rich.console import Console

from n8nselfhoster.constants import BACKUP_TIMESTAMP_FORMAT, DIR_MODE
from n8nselfhoster.errors import PersistenceFailure
from n8nselfhoster.errors_catalog import actionable_error, diagnostics_for


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(
        self,
        logger: logging.Logger,
        console: Console,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.logger = logger
        self.console = console
        self.clock = clock

    def _failure(self, path: str, exc: Exception) -> PersistenceFailure:
        return PersistenceFailure(
            f"{actionable_error('persistence_failure', path=path)}\n{exc}",
            diagnostics=diagnostics_for("persistence_failure", path=path),
        )

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dir(self, path: str):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise self._failure(path, exc) from exc
        if not os.access(path, os.W_OK):
            raise self._failure(path, PermissionError(f"{path} is not writable"))

    def write_files_atomically(self, files: Sequence[Tuple[str, str, int]]):
        """Writes every (path, content, mode) entry or none of them.

        Contents are staged in temp files beside their targets and renamed
        into place. If a rename fails, targets already replaced are put back
        to their previous contents.
        """
        staged: List[Tuple[str, str]] = []
        try:
            for path, content, mode in files:
                directory = os.path.dirname(path) or "."
                fd, temp_path = tempfile.mkstemp(
                    prefix=f".{os.path.basename(path)}-", suffix=".tmp", dir=directory
                )
                staged.append((temp_path, path))
                with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                    file_obj.write(content)
                if sys.platform != "win32":
                    os.chmod(temp_path, mode)
        except OSError as exc:
            self._discard([temp_path for temp_path, _ in staged])
            raise self._failure(os.path.dirname(files[0][0]) or ".", exc) from exc

        previous: Dict[str, Optional[bytes]] = {}
        try:
            for _, path in staged:
                if os.path.exists(path):
                    with open(path, "rb") as file_obj:
                        previous[path] = file_obj.read()
                else:
                    previous[path] = None

            committed: List[str] = []
            try:
                for temp_path, path in staged:
                    os.replace(temp_path, path)
                    committed.append(path)
            except OSError:
                self._rollback(committed, previous)
                raise
        except OSError as exc:
            self._discard([temp_path for temp_path, _ in staged])
            raise self._failure(os.path.dirname(staged[0][1]) or ".", exc) from exc

        for _, path in staged:
            self.logger.debug("Wrote %s", path)

    def _rollback(self, committed: List[str], previous: Dict[str, Optional[bytes]]):
        for path in committed:
            content = previous.get(path)
            try:
                if content is None:
                    os.remove(path)
                else:
                    with open(path, "wb") as file_obj:
                        file_obj.write(content)
            except OSError as exc:
                self.logger.error("Could not roll back %s: %s", path, exc)

    def _discard(self, paths: List[str]):
        for path in paths:
            if os.path.exists(path):
                try:
                    os.remove(path)
                except OSError as exc:
                    self.logger.warning("Could not remove temp file %s: %s", path, exc)

    def create_backup(self, path: str) -> str:
        """Copies `path` to a new `<path>.backup.<timestamp>`; never overwrites."""
        stamp = self.clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        candidate = f"{path}.backup.{stamp}"
        counter = 1
        while os.path.exists(candidate):
            candidate = f"{path}.backup.{stamp}_{counter}"
            counter += 1

        try:
            shutil.copy2(path, candidate)
        except OSError as exc:
            raise self._failure(os.path.dirname(path) or ".", exc) from exc

        self.logger.info("Backed up %s to %s", path, candidate)
        return candidate

    def restore_backup(self, backup_path: str, path: str):
        try:
            with open(backup_path, "r", encoding="utf-8") as file_obj:
                content = file_obj.read()
            mode = os.stat(backup_path).st_mode & 0o777
        except OSError as exc:
            raise self._failure(os.path.dirname(path) or ".", exc) from exc

        self.write_files_atomically([(path, content, mode)])
        self.logger.info("Restored %s from %s", path, backup_path)

    def write_file(self, path: str, content: str, mode: int):
        directory = os.path.dirname(path) or "."
        if not os.path.isdir(directory):
            self.ensure_dir(directory)
            self.set_permissions(directory, DIR_MODE)
        self.write_files_atomically([(path, content, mode)])
