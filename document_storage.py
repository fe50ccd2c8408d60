from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import IO, Callable, Optional, Union

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import MAX_UPLOAD_BYTES

WORK_PERMIT_BUCKET = "work_permit"
BASTP_BUCKET = "bastp"
PROGRESS_EVIDENCE_BUCKET = "progress_evidence"

BUCKET_CONTENT_TYPES: dict[str, set[str]] = {
    WORK_PERMIT_BUCKET: {"application/pdf"},
    BASTP_BUCKET: {"application/pdf", "image/jpeg", "image/jpg", "image/png"},
    PROGRESS_EVIDENCE_BUCKET: {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"},
}

BUCKET_PREFIXES = {
    WORK_PERMIT_BUCKET: "permits",
    BASTP_BUCKET: "bastp-documents",
    PROGRESS_EVIDENCE_BUCKET: "evidence",
}

_TYPE_ERRORS = {
    WORK_PERMIT_BUCKET: "Only PDF files are allowed for work permits",
    BASTP_BUCKET: "Only PDF, JPG, and PNG files are allowed",
    PROGRESS_EVIDENCE_BUCKET: "Only image files are allowed (JPEG, PNG, GIF, WebP)",
}

MAX_FILENAME_LENGTH = 100
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_SIGNING_SALT = "document-storage"


class DocumentValidationError(Exception):
    """Raised when an upload is rejected before reaching storage."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class DocumentStorageError(RuntimeError):
    """Raised when the storage backend fails to read, write or delete a file."""

    pass


def validate_upload(
    bucket: str,
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> list[str]:
    allowed = BUCKET_CONTENT_TYPES.get(bucket)
    if allowed is None:
        return [f"Unknown storage bucket: {bucket}"]

    errors: list[str] = []
    if (content_type or "").split(";")[0].strip().lower() not in allowed:
        errors.append(_TYPE_ERRORS[bucket])
    if size > max_bytes:
        errors.append("File size must be less than 10MB")
    if not filename:
        errors.append("A file name is required")
    elif len(filename) > MAX_FILENAME_LENGTH:
        errors.append(f"Filename is too long (max {MAX_FILENAME_LENGTH} characters)")
    return errors


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename)


@dataclass
class DocumentStorage:
    root: str
    secret_key: str
    max_bytes: int = MAX_UPLOAD_BYTES
    default_expires: int = 3600

    @property
    def _serializer(self) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(self.secret_key, salt=_SIGNING_SALT)

    def _bucket_root(self, bucket: str) -> str:
        if bucket not in BUCKET_CONTENT_TYPES:
            raise DocumentStorageError(f"Unknown storage bucket: {bucket}")
        return os.path.abspath(os.path.join(self.root, bucket))

    def path_for(self, bucket: str, storage_path: str) -> str:
        bucket_root = self._bucket_root(bucket)
        candidate = os.path.abspath(os.path.join(bucket_root, storage_path))
        if os.path.commonpath([bucket_root, candidate]) != bucket_root:
            raise DocumentStorageError("Storage path escapes its bucket.")
        return candidate

    def exists(self, bucket: str, storage_path: str) -> bool:
        return os.path.isfile(self.path_for(bucket, storage_path))

    def upload(
        self,
        bucket: str,
        data: Union[bytes, IO[bytes]],
        *,
        filename: str,
        content_type: Optional[str],
        storage_path: Optional[str] = None,
    ) -> str:
        """Validate and store a file, returning its path inside ``bucket``.

        Nothing is written when validation fails. Existing files are never
        overwritten.
        """

        payload = data if isinstance(data, bytes) else data.read(self.max_bytes + 1)
        errors = validate_upload(bucket, filename, content_type, len(payload), max_bytes=self.max_bytes)
        if errors:
            raise DocumentValidationError(errors)

        if not storage_path:
            timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S-%f")
            storage_path = f"{BUCKET_PREFIXES[bucket]}/{timestamp}_{sanitize_filename(filename)}"

        target = self.path_for(bucket, storage_path)
        if os.path.exists(target):
            raise DocumentStorageError(f"A file already exists at {storage_path}.")
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "xb") as handle:
                handle.write(payload)
        except OSError as exc:
            raise DocumentStorageError(f"Upload failed: {exc}") from exc
        return storage_path

    def delete(self, bucket: str, storage_path: str) -> None:
        target = self.path_for(bucket, storage_path)
        try:
            os.remove(target)
        except FileNotFoundError as exc:
            raise DocumentStorageError(f"Delete failed: {storage_path} does not exist.") from exc
        except OSError as exc:
            raise DocumentStorageError(f"Delete failed: {exc}") from exc

    def remove_quietly(self, bucket: str, storage_path: Optional[str]) -> bool:
        """Best-effort delete of a superseded file; failures are only logged."""

        if not storage_path:
            return False
        try:
            self.delete(bucket, storage_path)
        except DocumentStorageError as exc:
            current_app.logger.warning("Failed to delete old file %s/%s: %s", bucket, storage_path, exc)
            return False
        return True

    def replace(
        self,
        bucket: str,
        old_storage_path: Optional[str],
        data: Union[bytes, IO[bytes]],
        *,
        filename: str,
        content_type: Optional[str],
        persist: Callable[[str], None],
    ) -> str:
        """Upload a new file, record it with ``persist`` and drop the old one.

        If ``persist`` raises, the new file is removed and the old one kept.
        Deleting the superseded file never fails the replacement.
        """

        new_path = self.upload(bucket, data, filename=filename, content_type=content_type)
        try:
            persist(new_path)
        except Exception:
            self.remove_quietly(bucket, new_path)
            raise
        if old_storage_path and old_storage_path != new_path:
            self.remove_quietly(bucket, old_storage_path)
        return new_path

    def sign(self, bucket: str, storage_path: str) -> str:
        return self._serializer.dumps({"bucket": bucket, "path": storage_path})

    def resolve(self, token: str, *, max_age: Optional[int] = None) -> tuple[str, str]:
        """Return ``(bucket, storage_path)`` for a signed token.

        Raises ``SignatureExpired`` once the token is older than ``max_age``
        seconds and ``BadSignature`` when it was tampered with.
        """

        payload = self._serializer.loads(token, max_age=max_age or self.default_expires)
        try:
            return payload["bucket"], payload["path"]
        except (KeyError, TypeError) as exc:
            raise BadSignature("Malformed storage token.") from exc


def init_document_storage(app) -> DocumentStorage:
    root = app.config.get("STORAGE_ROOT") or "storage"
    if not os.path.isabs(root):
        root = os.path.join(app.root_path, root)

    storage = DocumentStorage(
        root=root,
        secret_key=app.config.get("SECRET_KEY") or app.config.get("JWT_SECRET_KEY"),
        max_bytes=int(app.config.get("MAX_UPLOAD_BYTES") or MAX_UPLOAD_BYTES),
        default_expires=int(app.config.get("SIGNED_URL_EXPIRES") or 3600),
    )
    app.extensions["document_storage"] = storage
    return storage


def get_document_storage(app=None) -> DocumentStorage:
    target_app = app or current_app
    storage = target_app.extensions.get("document_storage") if target_app else None
    if storage is None:
        raise DocumentStorageError("Document storage has not been initialized.")
    return storage


__all__ = [
    "BASTP_BUCKET",
    "BadSignature",
    "DocumentStorage",
    "DocumentStorageError",
    "DocumentValidationError",
    "PROGRESS_EVIDENCE_BUCKET",
    "SignatureExpired",
    "WORK_PERMIT_BUCKET",
    "get_document_storage",
    "init_document_storage",
    "validate_upload",
]
