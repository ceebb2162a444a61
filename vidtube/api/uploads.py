from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path

from fastapi import UploadFile

logger = logging.getLogger(__name__)


def stage_upload(upload: UploadFile | None, temp_dir: str) -> str | None:
    """Copy an incoming multipart file to the temp directory and return its path."""
    if upload is None or not upload.filename:
        return None

    staging_dir = Path(temp_dir)
    staging_dir.mkdir(parents=True, exist_ok=True)
    target = staging_dir / f"{uuid.uuid4().hex}-{Path(upload.filename).name}"
    with target.open("wb") as handle:
        shutil.copyfileobj(upload.file, handle)
    logger.debug("Staged upload field_file=%s path=%s", upload.filename, target)
    return str(target)


def discard_staged(*paths: str | None) -> None:
    """Remove staged files an operation did not consume."""
    for path in paths:
        if path:
            Path(path).unlink(missing_ok=True)
