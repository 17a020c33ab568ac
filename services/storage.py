"""
Local file storage for customer documents, visit signatures and logos.

Paths handed out are relative to the storage root and always start with the
organization id, so one tenant can never address another tenant's files.
"""

import base64
import binascii
import logging
import os
import uuid

from validators import ValidationError, sanitize_filename
from services.errors import NotFoundError

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'


class LocalStorage:
    """Filesystem-backed storage rooted at STORAGE_FOLDER."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    @classmethod
    def from_config(cls, config):
        root = config.get('STORAGE_FOLDER', 'storage')
        if not os.path.isabs(root):
            root = os.path.join(config.get('BASE_DIR', os.getcwd()), root)
        return cls(root)

    def _resolve(self, relative_path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, relative_path))
        if not full_path.startswith(self.root + os.sep):
            raise ValidationError("Invalid storage path", 'path')
        return full_path

    def save(self, relative_path: str, data: bytes) -> str:
        full_path = self._resolve(relative_path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, 'wb') as f:
            f.write(data)
        logger.info(f"Stored {len(data)} bytes at {relative_path}")
        return relative_path

    def read(self, relative_path: str) -> bytes:
        full_path = self._resolve(relative_path)
        if not os.path.exists(full_path):
            raise NotFoundError('File', relative_path)
        with open(full_path, 'rb') as f:
            return f.read()

    def delete(self, relative_path: str) -> bool:
        full_path = self._resolve(relative_path)
        if not os.path.exists(full_path):
            return False
        os.remove(full_path)
        logger.info(f"Deleted stored file {relative_path}")
        return True

    def exists(self, relative_path: str) -> bool:
        return os.path.exists(self._resolve(relative_path))


def customer_document_path(org_id: str, customer_id: int, filename: str) -> str:
    return f"{org_id}/customers/{customer_id}/{uuid.uuid4().hex[:12]}_{sanitize_filename(filename)}"


def signature_path(org_id: str, visit_id: int) -> str:
    return f"{org_id}/signatures/visit_{visit_id}.png"


def logo_path(org_id: str, filename: str) -> str:
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'png'
    return f"{org_id}/logos/logo.{extension}"


def decode_data_url(data_url: str) -> bytes:
    """Decode 'data:image/png;base64,...' (or bare base64) into bytes."""
    if not data_url or not isinstance(data_url, str):
        raise ValidationError("Signature image is required", 'signature')
    payload = data_url.split(',', 1)[1] if data_url.startswith('data:') else data_url
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Signature is not valid base64 image data", 'signature')
