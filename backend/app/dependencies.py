from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends

from .config import Settings, get_settings
from .db import get_session
from .services.object_storage import LocalObjectStorage
from .storage_db import DatabaseStore


def get_store() -> Generator[DatabaseStore, None, None]:
    """One store per request; the session commits when the route returns."""
    with get_session() as session:
        yield DatabaseStore(session)


def get_object_storage(
    settings: Settings = Depends(get_settings),
) -> LocalObjectStorage:
    return LocalObjectStorage(settings.upload_dir, f"{settings.public_base_url}/uploads")
