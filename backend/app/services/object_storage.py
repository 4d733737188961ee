from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from pathlib import Path, PurePath

from ..errors import ValidationError

# Served from the API origin, so markup and script types (html, svg, js) stay out.
MEDIA_EXTENSIONS = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".webp",
        ".heic",
        ".mp4",
        ".mov",
        ".webm",
        ".m4v",
        ".mp3",
        ".wav",
    }
)


@dataclass(frozen=True)
class StorageObject:
    key: str
    url: str


class LocalObjectStorage:
    """Writes uploads under ``root`` and serves them from ``public_base_url``."""

    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def accepts(original_name: str) -> bool:
        return PurePath(original_name).suffix.lower() in MEDIA_EXTENSIONS

    def save(self, original_name: str, content: bytes) -> StorageObject:
        if not self.accepts(original_name):
            raise ValidationError("unsupported_file_type")
        key = self._generate_key(original_name)
        destination = self.root / key
        destination.write_bytes(content)
        return StorageObject(key=key, url=f"{self.public_base_url}/{key}")

    @staticmethod
    def _generate_key(original_name: str) -> str:
        # time_ns keeps names ordered; the random part separates concurrent uploads
        suffix = PurePath(original_name).suffix.lower()
        return f"{time.time_ns()}-{secrets.token_hex(8)}{suffix}"
