# writory/services/drive.py
"""
Google Drive upload coordinator.

Files land in a named folder under GOOGLE_DRIVE_PARENT_FOLDER_ID (created on
first use), are shared "anyone with the link can read", and are addressed by
their https://drive.google.com/file/d/<id>/view URL.

Any failure raises UploadError. There is no retry and no cleanup of files
already uploaded for the same submission.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
import uuid
from typing import Callable, Dict, Optional

import requests
from werkzeug.datastructures import FileStorage

from writory.errors import UploadError

log = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME = "application/vnd.google-apps.folder"

POEMS_FOLDER = "Poems"
PHOTOS_FOLDER = "Photos (Participants)"

POEM_MIME_TYPES = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}
POEM_EXTENSIONS = {"pdf", "doc", "docx"}

_TITLE_RE = re.compile(r"[^A-Za-z0-9]+")


def file_url(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def sanitize_title(title: str, max_len: int = 60) -> str:
    s = _TITLE_RE.sub("_", (title or "").strip()).strip("_")
    return (s or "untitled")[:max_len]


def build_filename(email: str, title: str, ext: str, suffix: str = "") -> str:
    """``{emailLocalPart}_{sanitizedTitle}{suffix}.{ext}``"""
    local = (email or "").split("@")[0].strip() or "anonymous"
    local = _TITLE_RE.sub("_", local).strip("_") or "anonymous"
    return f"{local}_{sanitize_title(title)}{suffix}.{ext.lower().lstrip('.')}"


def _extension(filename: Optional[str]) -> str:
    name = (filename or "").strip()
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def _read_limited(fs: FileStorage, max_bytes: int, label: str) -> bytes:
    data = fs.read(max_bytes + 1)
    if not data:
        raise UploadError(f"{label} file is empty", status_code=400)
    if len(data) > max_bytes:
        raise UploadError(
            f"{label} file exceeds {max_bytes // (1024 * 1024)}MB limit",
            status_code=413,
        )
    return data


def read_poem_file(fs: Optional[FileStorage], max_bytes: int):
    """Validate a poem upload. Returns ``(data, mime_type, ext)``."""
    if fs is None or not fs.filename:
        raise UploadError("Poem file is required", status_code=400)

    mime = (fs.mimetype or "").lower()
    ext = _extension(fs.filename)
    if mime in POEM_MIME_TYPES:
        ext = ext if ext in POEM_EXTENSIONS else POEM_MIME_TYPES[mime]
    elif ext not in POEM_EXTENSIONS:
        raise UploadError("Poem file must be a PDF, DOC or DOCX document", status_code=400)
    else:
        mime = {v: k for k, v in POEM_MIME_TYPES.items()}[ext]

    return _read_limited(fs, max_bytes, "Poem"), mime, ext


def read_photo_file(fs: Optional[FileStorage], max_bytes: int):
    """Validate a photo upload. Returns ``(data, mime_type, ext)``."""
    if fs is None or not fs.filename:
        raise UploadError("Photo is required", status_code=400)

    mime = (fs.mimetype or "").lower()
    if not mime.startswith("image/"):
        raise UploadError("Photo must be an image file", status_code=400)
    ext = _extension(fs.filename) or mime.split("/", 1)[1]
    return _read_limited(fs, max_bytes, "Photo"), mime, ext


class DriveUploader:
    """
    Per-app Drive client. Holds the folder-id cache and the authorized
    session; one instance lives in ``app.extensions["writory.drive"]``.
    """

    def __init__(
        self,
        session_factory: Callable[[], requests.Session],
        parent_folder_id: str,
        *,
        timeout: int = 30,
        demo: bool = False,
    ) -> None:
        self._session_factory = session_factory
        self._session: Optional[requests.Session] = None
        self.parent_folder_id = parent_folder_id
        self.timeout = timeout
        self.demo = demo
        self._folder_ids: Dict[str, str] = {}
        self._lock = threading.Lock()

    # ---------------- Session ----------------
    @property
    def session(self) -> requests.Session:
        if self._session is None:
            try:
                self._session = self._session_factory()
            except Exception as e:
                raise UploadError(f"Google Drive authentication failed: {e}") from e
        return self._session

    def _call(self, method: str, url: str, what: str, **kwargs) -> dict:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as e:
            log.error("Drive %s failed: %s", what, e)
            raise UploadError(f"Google Drive {what} failed") from e
        return resp.json() if resp.content else {}

    # ---------------- Folders ----------------
    def ensure_folder(self, name: str) -> str:
        with self._lock:
            cached = self._folder_ids.get(name)
        if cached:
            return cached

        if not self.parent_folder_id:
            raise UploadError("GOOGLE_DRIVE_PARENT_FOLDER_ID is not configured", status_code=500)

        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        query = (
            f"name = '{escaped}' and '{self.parent_folder_id}' in parents "
            f"and mimeType = '{FOLDER_MIME}' and trashed = false"
        )
        found = self._call(
            "GET",
            DRIVE_FILES_URL,
            "folder lookup",
            params={"q": query, "fields": "files(id, name)", "supportsAllDrives": "true"},
        )
        files = found.get("files") or []
        if files:
            folder_id = files[0]["id"]
        else:
            created = self._call(
                "POST",
                DRIVE_FILES_URL,
                "folder creation",
                params={"fields": "id", "supportsAllDrives": "true"},
                json={"name": name, "mimeType": FOLDER_MIME, "parents": [self.parent_folder_id]},
            )
            folder_id = created["id"]
            log.info("Created Drive folder %r (%s)", name, folder_id)

        with self._lock:
            self._folder_ids[name] = folder_id
        return folder_id

    # ---------------- Upload ----------------
    def upload(self, data: bytes, filename: str, mime_type: str, folder: str) -> str:
        """Upload ``data`` into ``folder`` and return its public view URL."""
        if self.demo:
            fake_id = f"demo_{int(time.time())}_{uuid.uuid4().hex[:8]}"
            log.info("DEMO upload %s (%d bytes) -> %s", filename, len(data), fake_id)
            return file_url(fake_id)

        folder_id = self.ensure_folder(folder)
        boundary = f"writory-{uuid.uuid4().hex}"
        metadata = json.dumps({"name": filename, "parents": [folder_id]}).encode("utf-8")
        body = b"".join(
            [
                f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode("ascii"),
                metadata,
                f"\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n".encode("ascii"),
                data,
                f"\r\n--{boundary}--".encode("ascii"),
            ]
        )
        uploaded = self._call(
            "POST",
            DRIVE_UPLOAD_URL,
            "upload",
            params={"uploadType": "multipart", "fields": "id", "supportsAllDrives": "true"},
            data=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        file_id = uploaded.get("id")
        if not file_id:
            raise UploadError("Google Drive upload returned no file id")

        self._call(
            "POST",
            f"{DRIVE_FILES_URL}/{file_id}/permissions",
            "permission update",
            params={"supportsAllDrives": "true"},
            json={"role": "reader", "type": "anyone"},
        )
        log.info("Uploaded %s to Drive folder %r -> %s", filename, folder, file_id)
        return file_url(file_id)

