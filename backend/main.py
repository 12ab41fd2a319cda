"""FastAPI backend for code generation, project storage and sandboxed previews."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import API_HOST, API_PORT, CORS_HEADERS, CORS_METHODS, CORS_ORIGINS, print_config, setup_logging
from document_synthesizer import synthesize_document
from errors import ModelError, StoreError
from kv_store import get_store
from model_client import get_model_client
from models import ProjectDescriptor, ProjectFile
from preview_lifecycle import PreviewLifecycle, is_valid_owner_id
from preview_store import PreviewSessionStore
from project_service import ProjectService
from prompt_manager import get_prompt_manager

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    logger.info("Code Preview Builder API starting")
    yield
    logger.info("Code Preview Builder API stopped")


app = FastAPI(title="Code Preview Builder API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=CORS_METHODS,
    allow_headers=CORS_HEADERS,
)

# Services (built lazily, replaced by init_services in tests)
preview_lifecycle: Optional[PreviewLifecycle] = None
project_service: Optional[ProjectService] = None


def init_services(lifecycle: PreviewLifecycle, projects: ProjectService) -> None:
    """Install service instances (used by tests with in-memory stores or mocks)."""
    global preview_lifecycle, project_service
    preview_lifecycle = lifecycle
    project_service = projects


def get_preview_lifecycle() -> PreviewLifecycle:
    global preview_lifecycle
    if preview_lifecycle is None:
        preview_lifecycle = PreviewLifecycle(PreviewSessionStore(get_store("workspace")))
    return preview_lifecycle


def get_project_service() -> ProjectService:
    global project_service
    if project_service is None:
        project_service = ProjectService(
            model=get_model_client(),
            prompts=get_prompt_manager(),
            metadata_store=get_store("metadata"),
            workspace_store=get_store("workspace"),
        )
    return project_service


def resolve_user_id(header_value: Optional[str], query_value: Optional[str]) -> Optional[str]:
    """User id from the X-User-ID header, falling back to the userId query param."""
    return header_value or query_value


# ==============================================
# ERROR HANDLERS
# ==============================================

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse({"error": "Storage unavailable"}, status_code=500)


@app.exception_handler(ModelError)
async def model_error_handler(request: Request, exc: ModelError):
    logger.error(f"Model failure on {request.url.path}: {exc}")
    return JSONResponse({"error": "Model request failed"}, status_code=502)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ==============================================
# REQUEST MODELS
# ==============================================

class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreatePreviewRequest(ApiModel):
    owner_id: Optional[str] = None
    source_project_id: str = ""
    file_set: Optional[List[ProjectFile]] = None
    project: Optional[ProjectDescriptor] = None


class ChatRequest(ApiModel):
    message: str
    context: List[Dict[str, str]] = []
    user_id: Optional[str] = None
    project_type: str = "nextjs"


class GenerateProjectRequest(ApiModel):
    user_id: Optional[str] = None
    framework: str = "nextjs"
    requirements: Optional[str] = None
    features: str = ""
    project_name: Optional[str] = None


class FixCodeRequest(ApiModel):
    user_id: Optional[str] = None
    code: str
    error: str = ""
    file_name: Optional[str] = None
    requirements: str = ""


class SaveWorkspaceRequest(ApiModel):
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    files: Any = None
    current_file: Optional[str] = None
    cursor_position: Any = None


# ==============================================
# PREVIEW ENDPOINTS
# ==============================================

@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Code Preview Builder API", "version": "1.0.0"}


@app.post("/api/deploy-preview")
@app.post("/api/create-preview")
def create_preview(body: CreatePreviewRequest, x_user_id: Optional[str] = Header(None)):
    """
    Snapshot a file set as a preview session.

    The file set comes from the body, or from the stored project named by
    sourceProjectId when the body carries none.
    """
    owner_id = body.owner_id or x_user_id
    if not owner_id or not is_valid_owner_id(owner_id):
        raise HTTPException(status_code=400, detail="Owner ID required")

    file_set = body.file_set
    project = body.project
    if file_set is None:
        if not body.source_project_id:
            raise HTTPException(status_code=400, detail="fileSet or sourceProjectId required")
        loaded = get_project_service().load_project(body.source_project_id)
        if loaded is None:
            raise HTTPException(status_code=404, detail="Project not found")
        file_set, stored_project = loaded
        project = project or stored_project

    try:
        session = get_preview_lifecycle().create(
            owner_id=owner_id,
            source_project_id=body.source_project_id,
            file_set=file_set,
            project=project or ProjectDescriptor(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Preview {session.id} created for {owner_id}")
    return {
        "sessionId": session.id,
        "previewUrl": get_preview_lifecycle().preview_url(session.id),
        "expiresAt": session.expires_at.isoformat(),
    }


@app.get("/preview/{session_id}", response_class=HTMLResponse)
def render_preview(session_id: str):
    """Render the sandboxed preview document for a session."""
    session = get_preview_lifecycle().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Preview not found")
    document = synthesize_document(session.project_descriptor, session.file_set)
    return HTMLResponse(content=document)


@app.get("/api/preview-status")
def preview_status(session_id: Optional[str] = Query(None, alias="sessionId")):
    """Status of one preview session."""
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID required")
    session = get_preview_lifecycle().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Preview not found")
    return get_preview_lifecycle().status(session)


@app.get("/api/previews")
def list_previews(
    x_user_id: Optional[str] = Header(None),
    user_id: Optional[str] = Query(None, alias="userId")
):
    """All preview sessions of an owner."""
    owner_id = resolve_user_id(x_user_id, user_id)
    if not owner_id or not is_valid_owner_id(owner_id):
        raise HTTPException(status_code=400, detail="User ID required")
    sessions = get_preview_lifecycle().list_for_owner(owner_id)
    return {"previews": [s.model_dump(by_alias=True, mode="json") for s in sessions]}


# ==============================================
# GENERATION ENDPOINTS
# ==============================================

@app.post("/api/chat")
def chat(body: ChatRequest):
    """Chat with the coding assistant."""
    if not body.user_id:
        raise HTTPException(status_code=400, detail="User ID required")
    return get_project_service().chat(
        user_id=body.user_id,
        message=body.message,
        context=body.context,
        project_type=body.project_type,
    )


@app.post("/api/generate-project")
def generate_project(body: GenerateProjectRequest):
    """Generate a complete project from requirements."""
    if not body.user_id or not body.requirements or not is_valid_owner_id(body.user_id):
        raise HTTPException(status_code=400, detail="User ID and requirements are required")
    return get_project_service().generate_project(
        user_id=body.user_id,
        requirements=body.requirements,
        framework=body.framework,
        features=body.features,
        project_name=body.project_name,
    )


@app.post("/api/fix-code")
def fix_code(body: FixCodeRequest):
    """Ask the model to fix a piece of code."""
    return get_project_service().fix_code(
        user_id=body.user_id or "anonymous",
        code=body.code,
        error=body.error,
        file_name=body.file_name,
        requirements=body.requirements,
    )


# ==============================================
# WORKSPACE ENDPOINTS
# ==============================================

@app.post("/api/save-workspace")
def save_workspace(body: SaveWorkspaceRequest):
    """Persist an editor workspace."""
    if not body.user_id or not body.project_id or not is_valid_owner_id(body.user_id):
        raise HTTPException(status_code=400, detail="User ID and Project ID required")
    saved_at = get_project_service().save_workspace(
        user_id=body.user_id,
        project_id=body.project_id,
        files=body.files,
        current_file=body.current_file,
        cursor_position=body.cursor_position,
    )
    return {"success": True, "savedAt": saved_at}


@app.get("/api/load-workspace")
def load_workspace(
    x_user_id: Optional[str] = Header(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    project_id: Optional[str] = Query(None, alias="projectId")
):
    """Load a saved editor workspace."""
    owner_id = resolve_user_id(x_user_id, user_id)
    if not owner_id or not project_id or not is_valid_owner_id(owner_id):
        raise HTTPException(status_code=400, detail="User ID and Project ID required")
    workspace = get_project_service().load_workspace(owner_id, project_id)
    if workspace is None:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return workspace


@app.get("/api/user-projects")
def user_projects(
    x_user_id: Optional[str] = Header(None),
    user_id: Optional[str] = Query(None, alias="userId")
):
    """Project metadata for a user, newest first."""
    owner_id = resolve_user_id(x_user_id, user_id)
    if not owner_id or not is_valid_owner_id(owner_id):
        raise HTTPException(status_code=400, detail="User ID required")
    return {"projects": get_project_service().list_user_projects(owner_id)}


if __name__ == "__main__":
    import uvicorn

    print_config()

    logger.info("Starting Uvicorn server...")

    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level="info")
