from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, FrozenSet, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class Role(str, Enum):
    ADMIN = "admin"
    TEAM_LEADER = "team_leader"
    TEAM_MEMBER = "team_member"

    @classmethod
    def parse(cls, value: Any) -> Role:
        """Parse a stored or transported role string; raises ValueError."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError("role must be a string")
        return cls(value.strip())


class ContentType(str, Enum):
    POST = "post"
    REEL = "reel"
    STORY = "story"


class ContentStatus(str, Enum):
    IDEA = "idea"
    DRAFT = "draft"
    READY = "ready"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class PatchModel(BaseModel):
    """Partial update payload; only fields the caller sent are applied."""

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required_columns(self) -> PatchModel:
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return {
            name: value.value if isinstance(value, Enum) else value
            for name, value in self.model_dump(exclude_unset=True).items()
        }


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    token: str


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    role: Role
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    avatar_url: str = ""


class BootstrapUserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    email: EmailStr


class UserUpdate(PatchModel):
    username: Optional[str] = Field(None, min_length=1, max_length=64)
    role: Optional[Role] = None
    full_name: Optional[str] = Field(None, min_length=1)
    avatar_url: Optional[str] = None
    email: Optional[EmailStr] = None


class User(BaseModel):
    id: UUID
    username: str
    role: Role
    full_name: str
    email: str
    avatar_url: str = ""
    created_at: datetime
    updated_at: datetime


class UserSummary(BaseModel):
    id: UUID
    username: str
    full_name: str
    role: Role
    avatar_url: str = ""


class ProjectCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(..., min_length=1)
    description: str = ""
    archived: bool = False
    user_ids: Optional[List[UUID]] = Field(None, alias="userIds")


class ProjectUpdate(PatchModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    archived: Optional[bool] = None


class Project(BaseModel):
    id: str
    name: str
    description: str = ""
    archived: bool = False
    created_at: datetime
    updated_at: datetime


class AssignmentsReplace(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: List[UUID] = Field(..., alias="userIds")


class ProjectAssignment(BaseModel):
    id: UUID
    project_id: str
    user_id: UUID
    created_at: datetime
    user: Optional[UserSummary] = None


def _unique_platforms(value: Optional[List[str]]) -> Optional[List[str]]:
    # platforms behave as a set; first occurrence keeps its position
    if value is None:
        return value
    return list(dict.fromkeys(value))


class ContentItemCreate(BaseModel):
    project_id: str = Field(..., min_length=1)
    title: str = ""
    caption: str = ""
    type: ContentType
    platforms: List[str] = Field(default_factory=list)
    status: ContentStatus = ContentStatus.IDEA
    assignee_id: Optional[UUID] = None
    start_date: date
    end_date: Optional[date] = None
    assets: List[Any] = Field(default_factory=list)
    notes_internal: str = ""
    notes_client: str = ""

    @field_validator("platforms")
    @classmethod
    def dedupe_platforms(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _unique_platforms(value)


class ContentItemUpdate(PatchModel):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"assignee_id", "end_date"})

    title: Optional[str] = None
    caption: Optional[str] = None
    type: Optional[ContentType] = None
    platforms: Optional[List[str]] = None
    status: Optional[ContentStatus] = None
    assignee_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    assets: Optional[List[Any]] = None
    notes_internal: Optional[str] = None
    notes_client: Optional[str] = None

    @field_validator("platforms")
    @classmethod
    def dedupe_platforms(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _unique_platforms(value)


class ContentItem(BaseModel):
    id: UUID
    project_id: str
    title: str
    caption: str
    type: ContentType
    platforms: List[str] = Field(default_factory=list)
    status: ContentStatus
    assignee_id: Optional[UUID] = None
    start_date: date
    end_date: Optional[date] = None
    assets: List[Any] = Field(default_factory=list)
    notes_internal: str = ""
    notes_client: str = ""
    created_at: datetime
    updated_at: datetime


class ClientContentItem(BaseModel):
    """Content item as shown to clients; internal notes are withheld."""

    id: UUID
    project_id: str
    title: str
    caption: str
    type: ContentType
    platforms: List[str] = Field(default_factory=list)
    status: ContentStatus
    start_date: date
    end_date: Optional[date] = None
    assets: List[Any] = Field(default_factory=list)
    notes_client: str = ""
    updated_at: datetime


class ClientNotesUpdate(BaseModel):
    notes_client: str


class ClientTokenRecord(BaseModel):
    id: UUID
    project_id: str
    token: str
    created_at: datetime


class ClientTokenValidation(BaseModel):
    valid: bool
    project_id: str
