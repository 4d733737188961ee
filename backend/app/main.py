from __future__ import annotations

import time
import uuid
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import auth, schemas
from .config import Settings, get_settings
from .dependencies import get_object_storage, get_store
from .errors import AppError, Forbidden, ValidationError
from .observability import configure_logging, configure_tracing, get_logger, log_event
from .security import ClientClaims, SessionClaims, get_password_hash
from .services.assignments import AssignmentService
from .services.client_view import ClientViewService
from .services.object_storage import LocalObjectStorage
from .storage_db import DatabaseStore

settings = get_settings()
settings.upload_dir.mkdir(parents=True, exist_ok=True)

app = FastAPI(title="Content Calendar API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
if settings.tracing_enabled:
    configure_tracing(app)


def _http_error(exc: AppError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


@app.on_event("startup")
def startup() -> None:
    configure_logging(settings.log_level)


@app.middleware("http")
async def log_requests(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.perf_counter()
    response = await call_next(request)
    log_event(
        get_logger(),
        "request_completed",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    get_logger().exception(
        "unhandled_error",
        extra={"event": "unhandled_error", "method": request.method, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "internal_server_error"},
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# auth


@app.post("/auth/login", response_model=schemas.TokenResponse)
def login(
    payload: schemas.LoginRequest,
    store: DatabaseStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> schemas.TokenResponse:
    try:
        token = auth.login(store, payload.username, payload.password, settings)
    except AppError as exc:
        raise _http_error(exc) from exc
    return schemas.TokenResponse(token=token)


@app.post("/auth/bootstrap", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def bootstrap_admin(
    payload: schemas.BootstrapUserCreate,
    store: DatabaseStore = Depends(get_store),
) -> schemas.User:
    if store.has_users():
        raise HTTPException(status_code=403, detail="bootstrap_forbidden")
    user_payload = schemas.UserCreate(
        username=payload.username,
        password=payload.password,
        role=schemas.Role.ADMIN,
        full_name=payload.full_name,
        email=payload.email,
    )
    try:
        user = store.create_user(user_payload, get_password_hash(payload.password))
    except AppError as exc:
        raise _http_error(exc) from exc
    log_event(get_logger(), "user_created", user_id=str(user.id), role=user.role.value)
    return user


@app.get("/auth/me", response_model=schemas.User)
def current_user(
    store: DatabaseStore = Depends(get_store),
    claims: SessionClaims = Depends(auth.require_authenticated),
) -> schemas.User:
    user = store.get_user(claims.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user_not_found")
    return user


# users


@app.get("/users", response_model=List[schemas.User])
def list_users(
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> List[schemas.User]:
    return store.list_users()


@app.get("/users/{user_id}", response_model=schemas.User)
def get_user(
    user_id: uuid.UUID,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> schemas.User:
    user = store.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user_not_found")
    return user


@app.get("/users/{user_id}/projects", response_model=List[schemas.Project])
def list_user_projects(
    user_id: uuid.UUID,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> List[schemas.Project]:
    if not store.get_user(user_id):
        raise HTTPException(status_code=404, detail="user_not_found")
    return store.list_user_projects(user_id)


@app.post("/users", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: schemas.UserCreate,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_admin),
) -> schemas.User:
    password_hash = get_password_hash(payload.password)
    try:
        user = store.create_user(payload, password_hash)
    except AppError as exc:
        raise _http_error(exc) from exc
    log_event(get_logger(), "user_created", user_id=str(user.id), role=user.role.value)
    return user


@app.put("/users/{user_id}", response_model=schemas.User)
def update_user(
    user_id: uuid.UUID,
    payload: schemas.UserUpdate,
    store: DatabaseStore = Depends(get_store),
    claims: SessionClaims = Depends(auth.require_authenticated),
) -> schemas.User:
    is_admin = claims.role is schemas.Role.ADMIN
    try:
        if not is_admin and claims.user_id != user_id:
            raise Forbidden()
        if not is_admin and "role" in payload.model_fields_set:
            raise Forbidden("role_change_requires_admin")
        user = store.update_user(user_id, payload)
    except AppError as exc:
        raise _http_error(exc) from exc
    if not user:
        raise HTTPException(status_code=404, detail="user_not_found")
    return user


@app.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: uuid.UUID,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_admin),
) -> None:
    try:
        deleted = store.delete_user(user_id)
    except AppError as exc:
        raise _http_error(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="user_not_found")
    return None


# projects


@app.get("/projects", response_model=List[schemas.Project])
def list_projects(
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> List[schemas.Project]:
    return store.list_projects()


@app.get("/projects/{project_id}", response_model=schemas.Project)
def get_project(
    project_id: str,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> schemas.Project:
    project = store.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="project_not_found")
    return project


@app.post("/projects", response_model=schemas.Project, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: schemas.ProjectCreate,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> schemas.Project:
    try:
        project = store.create_project(payload)
        if payload.user_ids is not None:
            AssignmentService(store).replace(project.id, payload.user_ids)
    except AppError as exc:
        raise _http_error(exc) from exc
    return project


@app.put("/projects/{project_id}", response_model=schemas.Project)
def update_project(
    project_id: str,
    payload: schemas.ProjectUpdate,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> schemas.Project:
    try:
        project = store.update_project(project_id, payload)
    except AppError as exc:
        raise _http_error(exc) from exc
    if not project:
        raise HTTPException(status_code=404, detail="project_not_found")
    return project


@app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> None:
    try:
        deleted = store.delete_project(project_id)
    except AppError as exc:
        raise _http_error(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="project_not_found")
    return None


@app.get(
    "/projects/{project_id}/assignments",
    response_model=List[schemas.ProjectAssignment],
)
def list_project_assignments(
    project_id: str,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> List[schemas.ProjectAssignment]:
    try:
        return AssignmentService(store).list(project_id)
    except AppError as exc:
        raise _http_error(exc) from exc


@app.put(
    "/projects/{project_id}/assignments",
    response_model=List[schemas.ProjectAssignment],
)
def replace_project_assignments(
    project_id: str,
    payload: schemas.AssignmentsReplace,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> List[schemas.ProjectAssignment]:
    try:
        return AssignmentService(store).replace(project_id, payload.user_ids)
    except AppError as exc:
        raise _http_error(exc) from exc


@app.get("/projects/{project_id}/client-token", response_model=schemas.TokenResponse)
def issue_client_token(
    project_id: str,
    store: DatabaseStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    _: SessionClaims = Depends(auth.require_privileged),
) -> schemas.TokenResponse:
    try:
        token = auth.issue_client_token(store, project_id, settings)
    except AppError as exc:
        raise _http_error(exc) from exc
    return schemas.TokenResponse(token=token)


# stored client tokens


@app.get(
    "/projects/{project_id}/client-tokens",
    response_model=List[schemas.ClientTokenRecord],
)
def list_client_tokens(
    project_id: str,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> List[schemas.ClientTokenRecord]:
    if not store.get_project(project_id):
        raise HTTPException(status_code=404, detail="project_not_found")
    return store.list_client_tokens(project_id)


@app.post(
    "/projects/{project_id}/client-tokens",
    response_model=schemas.ClientTokenRecord,
    status_code=status.HTTP_201_CREATED,
)
def rotate_client_token(
    project_id: str,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> schemas.ClientTokenRecord:
    if not store.get_project(project_id):
        raise HTTPException(status_code=404, detail="project_not_found")
    try:
        return store.create_client_token(project_id)
    except AppError as exc:
        raise _http_error(exc) from exc


@app.get(
    "/client-tokens/validate/{token}",
    response_model=schemas.ClientTokenValidation,
)
def validate_client_token(
    token: str,
    store: DatabaseStore = Depends(get_store),
) -> schemas.ClientTokenValidation:
    record = store.get_client_token_by_value(token)
    if not record:
        raise HTTPException(status_code=404, detail="invalid_token")
    return schemas.ClientTokenValidation(valid=True, project_id=record.project_id)


@app.delete("/client-tokens/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client_token(
    token_id: uuid.UUID,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> None:
    if not store.delete_client_token(token_id):
        raise HTTPException(status_code=404, detail="client_token_not_found")
    return None


# content items


@app.get("/content", response_model=List[schemas.ContentItem])
def list_content_items(
    project_id: Optional[str] = Query(None, alias="projectId"),
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> List[schemas.ContentItem]:
    return store.list_content_items(project_id=project_id)


@app.get("/content/my-assignments", response_model=List[schemas.ContentItem])
def list_my_content_items(
    store: DatabaseStore = Depends(get_store),
    claims: SessionClaims = Depends(auth.require_authenticated),
) -> List[schemas.ContentItem]:
    return store.list_content_items(assignee_id=claims.user_id)


@app.get("/content/date-range", response_model=List[schemas.ContentItem])
def list_content_items_by_date_range(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    project_id: Optional[str] = Query(None, alias="projectId"),
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> List[schemas.ContentItem]:
    if end_date < start_date:
        raise _http_error(ValidationError("invalid_date_range"))
    return store.list_content_items_by_date_range(start_date, end_date, project_id)


@app.get("/content/{content_item_id}", response_model=schemas.ContentItem)
def get_content_item(
    content_item_id: uuid.UUID,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> schemas.ContentItem:
    item = store.get_content_item(content_item_id)
    if not item:
        raise HTTPException(status_code=404, detail="content_item_not_found")
    return item


@app.post("/content", response_model=schemas.ContentItem, status_code=status.HTTP_201_CREATED)
def create_content_item(
    payload: schemas.ContentItemCreate,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> schemas.ContentItem:
    try:
        return store.create_content_item(payload)
    except AppError as exc:
        raise _http_error(exc) from exc


@app.put("/content/{content_item_id}", response_model=schemas.ContentItem)
def update_content_item(
    content_item_id: uuid.UUID,
    payload: schemas.ContentItemUpdate,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_authenticated),
) -> schemas.ContentItem:
    try:
        item = store.update_content_item(content_item_id, payload)
    except AppError as exc:
        raise _http_error(exc) from exc
    if not item:
        raise HTTPException(status_code=404, detail="content_item_not_found")
    return item


@app.delete("/content/{content_item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_content_item(
    content_item_id: uuid.UUID,
    store: DatabaseStore = Depends(get_store),
    _: SessionClaims = Depends(auth.require_privileged),
) -> None:
    if not store.delete_content_item(content_item_id):
        raise HTTPException(status_code=404, detail="content_item_not_found")
    return None


# client view


@app.get("/client/project", response_model=schemas.Project)
def client_project(
    store: DatabaseStore = Depends(get_store),
    claims: ClientClaims = Depends(auth.require_client_token),
) -> schemas.Project:
    try:
        return ClientViewService(store, claims).project()
    except AppError as exc:
        raise _http_error(exc) from exc


@app.get("/client/content", response_model=List[schemas.ClientContentItem])
def client_content(
    store: DatabaseStore = Depends(get_store),
    claims: ClientClaims = Depends(auth.require_client_token),
) -> List[schemas.ClientContentItem]:
    return ClientViewService(store, claims).content()


@app.put(
    "/client/content/{content_item_id}/notes",
    response_model=schemas.ClientContentItem,
)
def client_update_notes(
    content_item_id: uuid.UUID,
    payload: schemas.ClientNotesUpdate,
    store: DatabaseStore = Depends(get_store),
    claims: ClientClaims = Depends(auth.require_client_token),
) -> schemas.ClientContentItem:
    try:
        return ClientViewService(store, claims).update_notes(
            content_item_id, payload.notes_client
        )
    except AppError as exc:
        raise _http_error(exc) from exc


# uploads


@app.post("/upload", response_model=List[str], status_code=status.HTTP_201_CREATED)
async def upload_files(
    files: List[UploadFile] = File(...),
    storage: LocalObjectStorage = Depends(get_object_storage),
    settings: Settings = Depends(get_settings),
    claims: SessionClaims = Depends(auth.require_authenticated),
) -> List[str]:
    if len(files) > settings.max_upload_files:
        raise _http_error(ValidationError("too_many_files"))
    if not all(storage.accepts(upload.filename or "") for upload in files):
        raise _http_error(ValidationError("unsupported_file_type"))
    contents = [await upload.read() for upload in files]
    if any(not content for content in contents):
        raise _http_error(ValidationError("empty_file"))
    urls = [
        storage.save(upload.filename or "", content).url
        for upload, content in zip(files, contents)
    ]
    log_event(
        get_logger(),
        "files_uploaded",
        user_id=str(claims.user_id),
        count=len(urls),
    )
    return urls
