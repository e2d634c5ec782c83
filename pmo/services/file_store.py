"""Disk storage for uploaded project documents.

Files land under ``UPLOAD_FOLDER/projects/<project_id>/<timestamp>-<random><ext>``;
the database only keeps the path relative to ``UPLOAD_FOLDER``.

``FileStore`` is installed in ``app.extensions["file_store"]`` and fetched
through ``get_file_store()``.
"""
import logging
import mimetypes
import os
import secrets
import time
from dataclasses import dataclass

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from pmo.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    original_name: str
    stored_name: str
    relative_path: str
    size: int
    mime_type: str | None


class FileStore:
    """Validates and persists uploads below a root directory."""

    def __init__(self, app=None):
        self.root = None
        self.max_size = 0
        self.allowed_extensions = frozenset()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.root = os.path.abspath(app.config["UPLOAD_FOLDER"])
        self.max_size = int(app.config["MAX_UPLOAD_SIZE"])
        self.allowed_extensions = frozenset(
            ext.lower() for ext in app.config["ALLOWED_UPLOAD_EXTENSIONS"]
        )
        app.extensions["file_store"] = self

    # ── Paths ────────────────────────────────────────────────────────────

    def absolute_path(self, relative_path: str) -> str:
        path = os.path.abspath(os.path.join(self.root, relative_path))
        if not path.startswith(self.root + os.sep):
            raise ValidationError("Invalid file path")
        return path

    # ── Operations ───────────────────────────────────────────────────────

    def save(self, project_id: int, upload: FileStorage) -> StoredFile:
        """Validate extension and size, then write the upload to disk."""
        original = secure_filename(upload.filename or "")
        if not original:
            raise ValidationError("A file name is required", details={"file": "missing name"})
        ext = os.path.splitext(original)[1].lower()
        if ext.lstrip(".") not in self.allowed_extensions:
            raise ValidationError(
                "File type not allowed",
                details={"file": f"allowed: {sorted(self.allowed_extensions)}"},
            )

        stream = upload.stream
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        if size > self.max_size:
            raise ValidationError(
                f"File too large (max {self.max_size // (1024 * 1024)} MB)",
                details={"file": "too large"},
            )

        stored_name = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
        relative_path = os.path.join("projects", str(project_id), stored_name)
        target = self.absolute_path(relative_path)
        os.makedirs(os.path.dirname(target), exist_ok=True)
        upload.save(target)

        mime_type = upload.mimetype or mimetypes.guess_type(original)[0]
        logger.info("Stored upload %s (%d bytes) for project %s", relative_path, size, project_id)
        return StoredFile(
            original_name=upload.filename or original,
            stored_name=stored_name,
            relative_path=relative_path,
            size=size,
            mime_type=mime_type,
        )

    def resolve(self, relative_path: str) -> str:
        """Absolute path of an existing stored file."""
        path = self.absolute_path(relative_path)
        if not os.path.isfile(path):
            raise NotFoundError("File", relative_path)
        return path

    def delete(self, relative_path: str) -> bool:
        """Remove a stored file. Returns False when it was already gone."""
        path = self.absolute_path(relative_path)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning("Stored file already missing: %s", relative_path)
            return False
        return True


def get_file_store() -> FileStore:
    return current_app.extensions["file_store"]
