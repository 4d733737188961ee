from __future__ import annotations

import uuid
from typing import List

from .. import schemas
from ..errors import Forbidden, NotFoundError
from ..observability import get_logger, log_event
from ..security import ClientClaims
from ..storage_db import DatabaseStore


class ClientViewService:
    """Read access plus client notes for the one project a client token names."""

    def __init__(self, store: DatabaseStore, claims: ClientClaims) -> None:
        self.store = store
        self.project_id = claims.project_id
        self.logger = get_logger()

    def project(self) -> schemas.Project:
        project = self.store.get_project(self.project_id)
        if not project:
            raise NotFoundError("project_not_found")
        return project

    def content(self) -> List[schemas.ClientContentItem]:
        items = self.store.list_content_items(project_id=self.project_id)
        return [self._to_client_item(item) for item in items]

    def update_notes(
        self, content_item_id: uuid.UUID, notes_client: str
    ) -> schemas.ClientContentItem:
        item = self.store.get_content_item(content_item_id)
        if not item:
            raise NotFoundError("content_item_not_found")
        if item.project_id != self.project_id:
            raise Forbidden("invalid_token_scope")
        updated = self.store.update_content_item(
            content_item_id, schemas.ContentItemUpdate(notes_client=notes_client)
        )
        log_event(
            self.logger,
            "client_notes_updated",
            project_id=self.project_id,
            content_item_id=str(content_item_id),
        )
        return self._to_client_item(updated)

    @staticmethod
    def _to_client_item(item: schemas.ContentItem) -> schemas.ClientContentItem:
        return schemas.ClientContentItem(
            **item.model_dump(include=set(schemas.ClientContentItem.model_fields))
        )
