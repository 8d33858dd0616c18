"""FastAPI application exposing validation, export, storage and playtests."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..analytics import compute_reachability
from ..errors import EntityNotFoundError, StorageError, UnsupportedExportFormat, ValidationError
from ..exporters import ExportFormat, export_json, export_project, resolve_format
from ..model import Project
from ..persistence import BlobStore, FileBlobStore, InMemoryBlobStore, ProjectRepository
from ..playtest import PlaytestSession
from ..settings import StudioSettings
from ..state_engine import TransitionRejected
from ..validation import ValidationStatus, validate

logger = logging.getLogger(__name__)


class _Resource(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidationIssueResource(_Resource):
    code: str
    message: str
    severity: str
    scene_id: str | None = None
    choice_id: str | None = None


class ValidationResponse(_Resource):
    """Validation outcome for a submitted project."""

    status: ValidationStatus
    valid: bool
    issues: list[ValidationIssueResource]
    reachable_scenes: list[str] = Field(default_factory=list)
    unreachable_scenes: list[str] = Field(default_factory=list)


class StoredProjectResource(_Resource):
    id: str
    name: str
    scene_count: int


class ProjectListResponse(_Resource):
    data: list[str]


class ChoiceResource(_Resource):
    id: str
    text: str
    number: int
    allowed: bool
    reason: str | None = None


class SceneResource(_Resource):
    id: str
    title: str
    description: str
    image: str | None = None


class PlaytestResponse(_Resource):
    """Snapshot of a playtest session after the latest request."""

    session_id: str
    project_id: str
    status: str
    scene: SceneResource | None
    choices: list[ChoiceResource]
    variables: dict[str, Any]
    history: list[str]
    accepted: bool = True
    reason: str | None = None


class PlaytestCreateRequest(_Resource):
    """Start a session from an inline project or a stored one."""

    project: Project | None = None
    project_id: str | None = None
    resume: bool = False


def _validation_detail(exc: ValidationError) -> dict[str, Any]:
    return {"message": str(exc), "issues": [issue.to_payload() for issue in exc.issues]}


def _playtest_response(
    session: PlaytestSession, *, accepted: bool = True, reason: str | None = None
) -> PlaytestResponse:
    scene = session.scene
    state = session.state
    choices = []
    if not state.ended:
        choices = [
            ChoiceResource(
                id=entry.choice.id,
                text=entry.choice.text,
                number=entry.index + 1,
                allowed=entry.allowed,
                reason=entry.reason,
            )
            for entry in session.choices()
        ]
    return PlaytestResponse(
        session_id=session.session_id,
        project_id=session.engine.project.id,
        status=state.status,
        scene=(
            SceneResource(
                id=scene.id,
                title=scene.title,
                description=scene.description,
                image=scene.image,
            )
            if scene is not None
            else None
        ),
        choices=choices,
        variables=dict(state.variables),
        history=list(state.history),
        accepted=accepted,
        reason=reason,
    )


def create_app(
    settings: StudioSettings | None = None,
    store: BlobStore | None = None,
) -> FastAPI:
    """Create the storyforge HTTP application.

    When ``store`` is omitted a :class:`FileBlobStore` is used if the settings
    name a storage directory, otherwise projects live in memory for the
    lifetime of the app.
    """

    resolved_settings = settings or StudioSettings.from_env()
    if store is None:
        if resolved_settings.storage_dir is not None:
            store = FileBlobStore(resolved_settings.storage_dir, indent=resolved_settings.json_indent)
        else:
            store = InMemoryBlobStore()
    repository = ProjectRepository(store)
    sessions: dict[str, PlaytestSession] = {}

    app = FastAPI(
        title="Storyforge API",
        version="0.1.0",
        description=(
            "Validate, export, store and playtest branching text adventure projects."
        ),
        openapi_tags=[
            {"name": "Projects", "description": "Validation, export and storage."},
            {"name": "Playtest", "description": "Drive preview sessions choice by choice."},
        ],
    )
    app.state.repository = repository
    app.state.sessions = sessions

    def _get_session(session_id: str) -> PlaytestSession:
        try:
            return sessions[session_id]
        except KeyError as exc:
            raise HTTPException(
                status_code=404, detail=f"Playtest session '{session_id}' does not exist."
            ) from exc

    def _load_project(project_id: str) -> Project:
        try:
            return repository.load_project(project_id)
        except EntityNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.post("/validate", response_model=ValidationResponse, tags=["Projects"])
    def validate_endpoint(project: Project) -> ValidationResponse:
        result = validate(project)
        report = compute_reachability(project)
        return ValidationResponse(
            status=result.status,
            valid=result.is_valid,
            issues=[ValidationIssueResource(**issue.to_payload()) for issue in result.issues],
            reachable_scenes=list(report.reachable_scenes),
            unreachable_scenes=list(report.unreachable_scenes),
        )

    @app.post("/export/{format}", tags=["Projects"])
    def export_endpoint(format: str, project: Project) -> Response:
        try:
            target = resolve_format(format)
            if target is ExportFormat.JSON:
                artifact = export_json(project, indent=resolved_settings.json_indent)
            else:
                artifact = export_project(project, target)
        except UnsupportedExportFormat as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=_validation_detail(exc)) from exc

        filename = f"{project.id}{target.file_extension}"
        return Response(
            content=artifact,
            media_type=target.media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/projects", response_model=ProjectListResponse, tags=["Projects"])
    def list_projects() -> ProjectListResponse:
        return ProjectListResponse(data=repository.list_projects())

    @app.put("/projects/{key}", response_model=StoredProjectResource, tags=["Projects"])
    def put_project(key: str, project: Project) -> StoredProjectResource:
        if key != project.id:
            raise HTTPException(
                status_code=400,
                detail=f"Path key '{key}' does not match project id '{project.id}'.",
            )
        try:
            repository.save_project(project)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return StoredProjectResource(id=project.id, name=project.name, scene_count=len(project.scenes))

    @app.get("/projects/{key}", response_model=Project, tags=["Projects"])
    def get_project(key: str) -> Project:
        return _load_project(key)

    @app.delete("/projects/{key}", status_code=204, tags=["Projects"])
    def delete_project(key: str) -> Response:
        try:
            repository.delete_project(key)
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.post(
        "/playtest", response_model=PlaytestResponse, status_code=201, tags=["Playtest"]
    )
    def start_playtest(payload: PlaytestCreateRequest) -> PlaytestResponse:
        if (payload.project is None) == (payload.project_id is None):
            raise HTTPException(
                status_code=400, detail="Provide exactly one of 'project' or 'projectId'."
            )
        project = payload.project or _load_project(payload.project_id or "")

        state = None
        if payload.resume:
            try:
                state = repository.load_game(project.id)
            except StorageError as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc

        try:
            session = PlaytestSession(project, state=state)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=_validation_detail(exc)) from exc

        sessions[session.session_id] = session
        logger.info("Started playtest %s for project %s", session.session_id, project.id)
        return _playtest_response(session)

    @app.get("/playtest/{session_id}", response_model=PlaytestResponse, tags=["Playtest"])
    def get_playtest(session_id: str) -> PlaytestResponse:
        return _playtest_response(_get_session(session_id))

    @app.post(
        "/playtest/{session_id}/choices/{choice_id}",
        response_model=PlaytestResponse,
        tags=["Playtest"],
    )
    def choose(session_id: str, choice_id: str) -> PlaytestResponse:
        session = _get_session(session_id)
        outcome = session.choose(choice_id)
        if isinstance(outcome, TransitionRejected):
            return _playtest_response(session, accepted=False, reason=outcome.reason)
        return _playtest_response(session)

    @app.post(
        "/playtest/{session_id}/restart", response_model=PlaytestResponse, tags=["Playtest"]
    )
    def restart(session_id: str) -> PlaytestResponse:
        session = _get_session(session_id)
        session.restart()
        return _playtest_response(session)

    @app.post("/playtest/{session_id}/save", status_code=204, tags=["Playtest"])
    def save_playtest(session_id: str) -> Response:
        session = _get_session(session_id)
        try:
            repository.save_game(session.engine.project.id, session.state)
        except (ValueError, StorageError) as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.delete("/playtest/{session_id}", status_code=204, tags=["Playtest"])
    def end_playtest(session_id: str) -> Response:
        sessions.pop(session_id, None)
        return Response(status_code=204)

    return app


__all__ = ["create_app"]
