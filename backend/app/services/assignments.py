from __future__ import annotations

import uuid
from typing import Iterable, List

from .. import schemas
from ..errors import InvalidReferenceError, NotFoundError
from ..observability import get_logger, log_event
from ..storage_db import DatabaseStore


class AssignmentService:
    def __init__(self, store: DatabaseStore) -> None:
        self.store = store
        self.logger = get_logger()

    def list(self, project_id: str) -> List[schemas.ProjectAssignment]:
        self._require_project(project_id)
        return self.store.list_project_assignments(project_id)

    def replace(
        self, project_id: str, user_ids: Iterable[uuid.UUID]
    ) -> List[schemas.ProjectAssignment]:
        """Make ``user_ids`` the exact assignment set of the project.

        Every id is checked before anything is written; an unknown id aborts
        the call with the current set left as it was.
        """
        self._require_project(project_id)
        wanted = list(dict.fromkeys(user_ids))
        missing = self.store.missing_user_ids(wanted)
        if missing:
            raise InvalidReferenceError("unknown_user_ids")
        assignments = self.store.replace_project_assignments(project_id, wanted)
        log_event(
            self.logger,
            "assignments_replaced",
            project_id=project_id,
            user_count=len(assignments),
        )
        return assignments

    def _require_project(self, project_id: str) -> schemas.Project:
        project = self.store.get_project(project_id)
        if not project:
            raise NotFoundError("project_not_found")
        return project
