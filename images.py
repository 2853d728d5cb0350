"""Base64 image payloads materialized as files under the upload directory."""
from __future__ import annotations

import base64
import binascii
import logging
import os
import re
from pathlib import Path
from typing import Optional

from config import settings

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"
EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}

_MIME_RE = re.compile(r"^data:(image/[\w.+-]+);", re.IGNORECASE)
_BASE64_MARKER = ";base64,"


def sniff_extension(payload: str) -> str:
    match = _MIME_RE.match(payload)
    if not match:
        return DEFAULT_EXTENSION
    return EXTENSIONS.get(match.group(1).lower(), DEFAULT_EXTENSION)


def is_remote(path: Optional[str]) -> bool:
    return bool(path) and path.lower().startswith(("http://", "https://"))


class ImageStore:
    def __init__(self, upload_dir: str | os.PathLike, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, payload: Optional[str], folder: str, base_name: str) -> Optional[str]:
        """Decode ``payload`` to ``<folder>/<base_name>.<ext>`` and return its public path.

        Returns None when there is nothing to decode or the file cannot be
        written; callers keep their previous value in that case.
        """
        if not payload:
            return None
        data = payload.split(_BASE64_MARKER)[-1]
        if not data:
            return None
        try:
            content = base64.b64decode(data + "=" * (-len(data) % 4))
        except (binascii.Error, ValueError) as e:
            logger.error(f"Error decoding image for {folder}/{base_name}: {e}")
            return None

        filename = f"{base_name}.{sniff_extension(payload)}"
        target = self.upload_dir / folder / filename
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error(f"Error saving image {target}: {e}")
            return None
        return f"{self.url_prefix}/{folder}/{filename}"

    def resolve(self, public_path: str) -> Optional[Path]:
        """Map a public ``/uploads/...`` path back to a file inside the upload directory."""
        prefix = self.url_prefix + "/"
        if not public_path.startswith(prefix):
            return None
        root = self.upload_dir.resolve()
        candidate = (root / public_path[len(prefix):]).resolve()
        if root not in candidate.parents:
            return None
        return candidate

    def delete(self, public_path: Optional[str]) -> bool:
        if not public_path or is_remote(public_path):
            return False
        path = self.resolve(public_path)
        if path is None:
            logger.warning(f"Refusing to delete file outside uploads: {public_path}")
            return False
        try:
            if path.is_file():
                path.unlink()
                logger.info(f"Deleted file: {public_path}")
                return True
        except OSError as e:
            logger.error(f"Error deleting file {public_path}: {e}")
        return False


images = ImageStore(settings.UPLOAD_DIR)


def get_images() -> ImageStore:
    return images
