from __future__ import annotations

import secrets
import uuid
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import AppError, ConflictError, InvalidReferenceError, UnexpectedError

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def classify_integrity_error(exc: IntegrityError, conflict_detail: str) -> AppError:
    """Map a driver integrity error to ConflictError or InvalidReferenceError.

    psycopg exposes the SQLSTATE code; SQLite only has the message text.
    """
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig).lower()
    if code == UNIQUE_VIOLATION or "unique constraint" in message:
        return ConflictError(conflict_detail)
    if code == FOREIGN_KEY_VIOLATION or "foreign key constraint" in message:
        return InvalidReferenceError()
    return UnexpectedError()


class DatabaseStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    # users

    def has_users(self) -> bool:
        return bool(self.session.scalar(select(models.User.id).limit(1)))

    def get_user_by_username(self, username: str) -> Optional[models.User]:
        return self.session.scalar(
            select(models.User).where(models.User.username == username)
        )

    def list_users(self) -> List[schemas.User]:
        users = self.session.scalars(
            select(models.User).order_by(models.User.full_name.asc())
        ).all()
        return [self._to_user(user) for user in users]

    def get_user(self, user_id: uuid.UUID) -> Optional[schemas.User]:
        user = self.session.get(models.User, user_id)
        return self._to_user(user) if user else None

    def missing_user_ids(self, user_ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return []
        found = set(
            self.session.scalars(
                select(models.User.id).where(models.User.id.in_(wanted))
            ).all()
        )
        return [user_id for user_id in wanted if user_id not in found]

    def create_user(self, payload: schemas.UserCreate, password_hash: str) -> schemas.User:
        user = models.User(
            username=payload.username,
            password_hash=password_hash,
            role=payload.role.value,
            full_name=payload.full_name,
            email=payload.email,
            avatar_url=payload.avatar_url,
        )
        self.session.add(user)
        self._flush("username_or_email_taken")
        return self._to_user(user)

    def update_user(
        self, user_id: uuid.UUID, patch: schemas.UserUpdate
    ) -> Optional[schemas.User]:
        user = self.session.get(models.User, user_id)
        if not user:
            return None
        if self._apply_patch(user, patch.changes()):
            self._flush("username_or_email_taken")
        return self._to_user(user)

    def delete_user(self, user_id: uuid.UUID) -> bool:
        user = self.session.get(models.User, user_id)
        if not user:
            return False
        self.session.delete(user)
        self._flush()
        return True

    def list_user_projects(self, user_id: uuid.UUID) -> List[schemas.Project]:
        projects = self.session.scalars(
            select(models.Project)
            .join(models.ProjectAssignment)
            .where(models.ProjectAssignment.user_id == user_id)
            .order_by(models.Project.created_at.desc())
        ).all()
        return [self._to_project(project) for project in projects]

    # projects

    def list_projects(self) -> List[schemas.Project]:
        projects = self.session.scalars(
            select(models.Project).order_by(models.Project.created_at.desc())
        ).all()
        return [self._to_project(project) for project in projects]

    def get_project(self, project_id: str) -> Optional[schemas.Project]:
        project = self.session.get(models.Project, project_id)
        return self._to_project(project) if project else None

    def create_project(self, payload: schemas.ProjectCreate) -> schemas.Project:
        project = models.Project(
            id=payload.id or str(uuid.uuid4()),
            name=payload.name,
            description=payload.description,
            archived=payload.archived,
        )
        self.session.add(project)
        self._flush("project_id_taken")
        return self._to_project(project)

    def update_project(
        self, project_id: str, patch: schemas.ProjectUpdate
    ) -> Optional[schemas.Project]:
        project = self.session.get(models.Project, project_id)
        if not project:
            return None
        if self._apply_patch(project, patch.changes()):
            self._flush()
        return self._to_project(project)

    def delete_project(self, project_id: str) -> bool:
        project = self.session.get(models.Project, project_id)
        if not project:
            return False
        self.session.delete(project)
        self._flush()
        return True

    # project assignments

    def list_project_assignments(self, project_id: str) -> List[schemas.ProjectAssignment]:
        rows = self.session.execute(
            select(models.ProjectAssignment, models.User)
            .join(models.User, models.ProjectAssignment.user_id == models.User.id)
            .where(models.ProjectAssignment.project_id == project_id)
            .order_by(models.ProjectAssignment.created_at.asc(), models.User.username.asc())
        ).all()
        return [self._to_assignment(assignment, user) for assignment, user in rows]

    def replace_project_assignments(
        self, project_id: str, user_ids: Iterable[uuid.UUID]
    ) -> List[schemas.ProjectAssignment]:
        """Swap the project's assignment set inside the current transaction.

        On failure the whole session is rolled back, so the previous set stays.
        """
        self.session.execute(
            delete(models.ProjectAssignment).where(
                models.ProjectAssignment.project_id == project_id
            )
        )
        for user_id in dict.fromkeys(user_ids):
            self.session.add(models.ProjectAssignment(project_id=project_id, user_id=user_id))
        self._flush("assignment_exists")
        return self.list_project_assignments(project_id)

    # content items

    def list_content_items(
        self,
        project_id: Optional[str] = None,
        assignee_id: Optional[uuid.UUID] = None,
    ) -> List[schemas.ContentItem]:
        query = select(models.ContentItem)
        if project_id:
            query = query.where(models.ContentItem.project_id == project_id)
        if assignee_id:
            query = query.where(models.ContentItem.assignee_id == assignee_id)
        items = self.session.scalars(
            query.order_by(models.ContentItem.start_date.desc())
        ).all()
        return [self._to_content_item(item) for item in items]

    def list_content_items_by_date_range(
        self, start: date, end: date, project_id: Optional[str] = None
    ) -> List[schemas.ContentItem]:
        query = select(models.ContentItem).where(
            models.ContentItem.start_date >= start,
            models.ContentItem.start_date <= end,
        )
        if project_id:
            query = query.where(models.ContentItem.project_id == project_id)
        items = self.session.scalars(
            query.order_by(models.ContentItem.start_date.asc())
        ).all()
        return [self._to_content_item(item) for item in items]

    def get_content_item(self, content_item_id: uuid.UUID) -> Optional[schemas.ContentItem]:
        item = self.session.get(models.ContentItem, content_item_id)
        return self._to_content_item(item) if item else None

    def create_content_item(self, payload: schemas.ContentItemCreate) -> schemas.ContentItem:
        item = models.ContentItem(
            project_id=payload.project_id,
            title=payload.title,
            caption=payload.caption,
            type=payload.type.value,
            platforms=list(payload.platforms),
            status=payload.status.value,
            assignee_id=payload.assignee_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            assets=list(payload.assets),
            notes_internal=payload.notes_internal,
            notes_client=payload.notes_client,
        )
        self.session.add(item)
        self._flush()
        return self._to_content_item(item)

    def update_content_item(
        self, content_item_id: uuid.UUID, patch: schemas.ContentItemUpdate
    ) -> Optional[schemas.ContentItem]:
        item = self.session.get(models.ContentItem, content_item_id)
        if not item:
            return None
        if self._apply_patch(item, patch.changes()):
            self._flush()
        return self._to_content_item(item)

    def delete_content_item(self, content_item_id: uuid.UUID) -> bool:
        item = self.session.get(models.ContentItem, content_item_id)
        if not item:
            return False
        self.session.delete(item)
        self._flush()
        return True

    # client tokens (stored, revocable form)

    def list_client_tokens(self, project_id: str) -> List[schemas.ClientTokenRecord]:
        tokens = self.session.scalars(
            select(models.ClientToken)
            .where(models.ClientToken.project_id == project_id)
            .order_by(models.ClientToken.created_at.desc())
        ).all()
        return [self._to_client_token(token) for token in tokens]

    def create_client_token(self, project_id: str) -> schemas.ClientTokenRecord:
        self.session.execute(
            delete(models.ClientToken).where(models.ClientToken.project_id == project_id)
        )
        token = models.ClientToken(project_id=project_id, token=secrets.token_urlsafe(32))
        self.session.add(token)
        self._flush()
        return self._to_client_token(token)

    def get_client_token_by_value(self, value: str) -> Optional[schemas.ClientTokenRecord]:
        token = self.session.scalar(
            select(models.ClientToken).where(models.ClientToken.token == value)
        )
        return self._to_client_token(token) if token else None

    def delete_client_token(self, token_id: uuid.UUID) -> bool:
        token = self.session.get(models.ClientToken, token_id)
        if not token:
            return False
        self.session.delete(token)
        self._flush()
        return True

    # helpers

    def _flush(self, conflict_detail: str = "conflict") -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise classify_integrity_error(exc, conflict_detail) from exc

    @staticmethod
    def _apply_patch(row: models.Base, changes: dict) -> bool:
        if not changes:
            return False
        for field, value in changes.items():
            setattr(row, field, value)
        row.updated_at = models.utcnow()
        return True

    @staticmethod
    def _to_user(user: models.User) -> schemas.User:
        return schemas.User(
            id=user.id,
            username=user.username,
            role=schemas.Role.parse(user.role),
            full_name=user.full_name,
            email=user.email,
            avatar_url=user.avatar_url or "",
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    @staticmethod
    def _to_user_summary(user: models.User) -> schemas.UserSummary:
        return schemas.UserSummary(
            id=user.id,
            username=user.username,
            full_name=user.full_name,
            role=schemas.Role.parse(user.role),
            avatar_url=user.avatar_url or "",
        )

    @staticmethod
    def _to_project(project: models.Project) -> schemas.Project:
        return schemas.Project(
            id=project.id,
            name=project.name,
            description=project.description or "",
            archived=project.archived,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )

    @classmethod
    def _to_assignment(
        cls, assignment: models.ProjectAssignment, user: models.User
    ) -> schemas.ProjectAssignment:
        return schemas.ProjectAssignment(
            id=assignment.id,
            project_id=assignment.project_id,
            user_id=assignment.user_id,
            created_at=assignment.created_at,
            user=cls._to_user_summary(user),
        )

    @staticmethod
    def _to_content_item(item: models.ContentItem) -> schemas.ContentItem:
        return schemas.ContentItem(
            id=item.id,
            project_id=item.project_id,
            title=item.title,
            caption=item.caption,
            type=item.type,
            platforms=item.platforms or [],
            status=item.status,
            assignee_id=item.assignee_id,
            start_date=item.start_date,
            end_date=item.end_date,
            assets=item.assets or [],
            notes_internal=item.notes_internal,
            notes_client=item.notes_client,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )

    @staticmethod
    def _to_client_token(token: models.ClientToken) -> schemas.ClientTokenRecord:
        return schemas.ClientTokenRecord(
            id=token.id,
            project_id=token.project_id,
            token=token.token,
            created_at=token.created_at,
        )
