"""JSON persistence for the services document.

The document is the source of truth across restarts.  It is always rewritten
in full and swapped into place with :func:`os.replace`, so a reader never sees
a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from atrium.discovery.errors import ConfigParseError, PersistenceError
from atrium.discovery.models import (
    Category,
    ConfigDocument,
    ServiceRecord,
    ServiceStatus,
    Settings,
)

logger = logging.getLogger(__name__)


def default_document() -> ConfigDocument:
    """Seed document used on first start (deterministic, no timestamps)."""
    internal = [
        ServiceRecord(
            id="board",
            name="Board",
            description="Announcements and open discussion board",
            url="/board",
            icon="📝",
            category="communication",
            status=ServiceStatus.ACTIVE,
            required_roles=["user"],
            is_internal=True,
            features=["posts", "comments", "attachments", "search"],
        ),
        ServiceRecord(
            id="calendar",
            name="Shared Calendar",
            description="Team schedule management and sharing",
            url="/calendar",
            icon="📅",
            category="collaboration",
            status=ServiceStatus.ACTIVE,
            required_roles=["user"],
            is_internal=True,
            features=["events", "reminders", "sharing", "recurring events"],
        ),
        ServiceRecord(
            id="gallery",
            name="Image Gallery",
            description="Image upload and gallery",
            url="/gallery",
            icon="🖼️",
            category="media",
            status=ServiceStatus.ACTIVE,
            required_roles=["user"],
            is_internal=True,
            features=["upload", "thumbnails", "albums", "download"],
        ),
    ]
    categories = [
        Category(
            id="communication",
            name="Communication",
            description="Services for talking and sharing information",
            icon="💬",
            order=1,
        ),
        Category(
            id="collaboration",
            name="Collaboration",
            description="Services for teamwork and productivity",
            icon="🤝",
            order=2,
        ),
        Category(
            id="media",
            name="Media",
            description="File and media management services",
            icon="📁",
            order=3,
        ),
    ]
    return ConfigDocument(
        internal_services=internal,
        external_services=[],
        categories=categories,
        settings=Settings(),
    )


class ConfigStore:
    """Load/save the services document at *path*.

    Args:
        path: Location of the JSON document.  Parent directories are created
              on first save.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ConfigDocument:
        """Read the document, creating the default one if the file is absent.

        Raises:
            ConfigParseError: the file exists but is not a valid document.
        """
        with self._lock:
            if not self.path.is_file():
                logger.info("No services document at %s, writing defaults", self.path)
                document = default_document()
                self._write_locked(document)
                return document
            try:
                raw = self.path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise ConfigParseError(f"Cannot read {self.path}: {exc}") from exc
        return self.parse(raw)

    def save(self, document: ConfigDocument) -> None:
        """Atomically replace the document on disk.

        Raises:
            PersistenceError: the file could not be written.
        """
        with self._lock:
            self._write_locked(document)

    @staticmethod
    def parse(raw: str) -> ConfigDocument:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigParseError(f"Invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigParseError("Services document must be a JSON object")
        try:
            return ConfigDocument.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigParseError(f"Invalid services document: {exc}") from exc

    @staticmethod
    def dumps(document: ConfigDocument) -> str:
        return json.dumps(document.to_dict(), indent=2, ensure_ascii=False) + "\n"

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _write_locked(self, document: ConfigDocument) -> None:
        payload = self.dumps(document)
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            logger.error("Failed to save services document %s: %s", self.path, exc)
            raise PersistenceError(f"Cannot write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug("Services document saved to %s", self.path)
