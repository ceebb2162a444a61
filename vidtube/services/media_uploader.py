from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    url: str
    public_id: str | None = None
    resource_type: str | None = None


class MediaUploader(Protocol):
    def upload(self, local_path: str | None) -> UploadResult | None: ...


def remove_staged_file(local_path: Path) -> None:
    try:
        local_path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove staged upload path=%s", local_path)


class CloudinaryUploader:
    """Uploads staged files through the Cloudinary SDK.

    The staged local file is removed after every attempt, whether or not
    the upload succeeded.
    """

    def __init__(self, *, cloud_name: str, api_key: str, api_secret: str, folder: str | None = None) -> None:
        self.folder = folder
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, local_path: str | None) -> UploadResult | None:
        if not local_path:
            return None

        path = Path(local_path)
        if not path.is_file():
            logger.warning("Upload skipped, staged file missing path=%s", path)
            return None

        options: dict[str, object] = {"resource_type": "auto"}
        if self.folder:
            options["folder"] = self.folder

        try:
            body = cloudinary.uploader.upload(str(path), **options)
        except cloudinary.exceptions.Error as exc:
            logger.error("Media upload failed path=%s error=%s", path.name, exc)
            return None
        finally:
            remove_staged_file(path)

        url = body.get("secure_url") or body.get("url")
        if not url:
            logger.error("Media upload response carried no url path=%s", path.name)
            return None

        logger.info("Media uploaded public_id=%s", body.get("public_id"))
        return UploadResult(url=url, public_id=body.get("public_id"), resource_type=body.get("resource_type"))
