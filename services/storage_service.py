"""File ingestion for blueprints and site photos.

Uploads files to Firebase Storage and returns public URLs that the
analysis provider can hand to the vision model.
"""

import mimetypes
import time
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import List, Optional, Sequence

import structlog
from firebase_admin import storage

from config.errors import EstimatorError, ErrorCode, ValidationError

logger = structlog.get_logger(__name__)

BLUEPRINT_FOLDER = "blueprints"
PHOTO_FOLDER = "photos"

BLUEPRINT_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg"}
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


@dataclass
class UploadFile:
    """A file received from the client."""
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lower()

    @property
    def resolved_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or "application/octet-stream"


@dataclass
class UploadedFiles:
    """Public URLs of a project's uploaded files."""
    blueprint: Optional[str] = None
    photos: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"blueprint": self.blueprint, "photos": list(self.photos)}


def _safe_filename(filename: str) -> str:
    name = PurePath(filename or "upload").name
    return "".join(c if c.isalnum() or c in "._-" else "_" for c in name) or "upload"


class StorageService:
    """Service for Firebase Storage uploads.

    Args:
        bucket_name: Storage bucket (None uses the app's default bucket).
        max_upload_bytes: Per-file size limit.
        bucket: Optional bucket object (tests inject a mock).
    """

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        bucket=None
    ):
        self.bucket_name = bucket_name
        self.max_upload_bytes = max_upload_bytes
        self._bucket = bucket

    @property
    def bucket(self):
        """Get storage bucket (lazy initialization)."""
        if self._bucket is None:
            self._bucket = storage.bucket(self.bucket_name)
        return self._bucket

    def _check_size(self, upload: UploadFile) -> None:
        if upload.size > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise ValidationError(
                f"File {upload.filename} is too large. Maximum size is {limit_mb}MB.",
                field="file",
                details={"filename": upload.filename, "size": upload.size},
                code=ErrorCode.FILE_TOO_LARGE
            )

    def upload_file(self, folder: str, upload: UploadFile) -> str:
        """Upload one file and return its public URL.

        Raises:
            ValidationError: If the file exceeds the size limit.
            EstimatorError: If the upload fails.
        """
        self._check_size(upload)
        path = f"{folder}/{int(time.time() * 1000)}_{_safe_filename(upload.filename)}"

        try:
            blob = self.bucket.blob(path)
            blob.upload_from_string(upload.data, content_type=upload.resolved_content_type)
            blob.make_public()
            url = blob.public_url
        except Exception as e:
            logger.error("storage_upload_failed", path=path, error=str(e))
            raise EstimatorError(
                code=ErrorCode.STORAGE_UPLOAD_FAILED,
                message=f"Failed to upload {upload.filename}: {str(e)}",
                details={"filename": upload.filename}
            )

        logger.info("file_uploaded", path=path, size=upload.size)
        return url

    def upload_project_files(
        self,
        blueprint: Optional[UploadFile],
        photos: Sequence[UploadFile] = ()
    ) -> UploadedFiles:
        """Validate and upload a blueprint plus optional site photos.

        All files are validated before anything is uploaded.

        Raises:
            ValidationError: Missing blueprint, wrong file type, or file too large.
            EstimatorError: If an upload fails.
        """
        if blueprint is None:
            raise ValidationError(
                "Please upload a blueprint or site plan",
                field="blueprint",
                code=ErrorCode.MISSING_FIELD
            )
        if blueprint.extension not in BLUEPRINT_EXTENSIONS:
            raise ValidationError(
                "Please upload PDF or image files only",
                field="blueprint",
                details={"filename": blueprint.filename},
                code=ErrorCode.UNSUPPORTED_FILE_TYPE
            )
        for photo in photos:
            if not photo.resolved_content_type.startswith("image/"):
                raise ValidationError(
                    "Please upload image files only for site photos",
                    field="photos",
                    details={"filename": photo.filename},
                    code=ErrorCode.UNSUPPORTED_FILE_TYPE
                )
        for upload in [blueprint, *photos]:
            self._check_size(upload)

        uploaded = UploadedFiles(blueprint=self.upload_file(BLUEPRINT_FOLDER, blueprint))
        for photo in photos:
            uploaded.photos.append(self.upload_file(PHOTO_FOLDER, photo))

        return uploaded
