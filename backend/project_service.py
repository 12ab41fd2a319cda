"""
Project Service - model-backed generation plus project/workspace persistence.

Storage layout:
```
metadata store
├── projects:<user_id>:<project_id>     # project metadata JSON
└── logs:<user_id>:<unix_millis>        # interaction log entry
workspace store
├── projects/<project_id>/project.json  # generated project
└── workspace/<user_id>/<project_id>    # editor workspace
```
"""

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

import config
from errors import StoreError
from fence_parser import extract_json_object, parse_fix_response, parse_project_structure
from guid_generator import generate_project_id
from kv_store import KVStore
from model_client import ModelClient
from models import DEFAULT_PROJECT_NAME, ProjectDescriptor, ProjectFile, validate_file_set
from prompt_manager import PromptManager

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def project_metadata_key(user_id: str, project_id: str) -> str:
    return f"projects:{user_id}:{project_id}"


def project_blob_key(project_id: str) -> str:
    return f"projects/{project_id}/project.json"


def workspace_key(user_id: str, project_id: str) -> str:
    return f"workspace/{user_id}/{project_id}"


def normalize_project(parsed: Any, framework: str, name: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Bring a parsed model reply to the flat project shape.

    Accepts both ``{"project": {...}}`` and a bare project object.
    Returns None if the object has no file structure list.
    """
    if not isinstance(parsed, dict):
        return None
    project = parsed.get("project", parsed)
    if not isinstance(project, dict) or not isinstance(project.get("structure"), list):
        return None
    project.setdefault("name", name or DEFAULT_PROJECT_NAME)
    project.setdefault("framework", framework)
    return project


def file_set_from_structure(structure: List[Dict[str, Any]]) -> List[ProjectFile]:
    """
    Convert a generated structure list into a valid File Set.

    Entries that fail validation are dropped; for duplicate paths the first
    entry wins.
    """
    files = []
    seen = set()
    for raw in structure:
        try:
            entry = ProjectFile.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Skipping invalid generated file entry: {e.errors()[0].get('msg')}")
            continue
        if entry.path in seen:
            logger.warning(f"Skipping duplicate generated path: {entry.path}")
            continue
        seen.add(entry.path)
        files.append(entry)
    return validate_file_set(files)


class ProjectService:
    """Chat, project generation, code fixing and workspace persistence."""

    def __init__(
        self,
        model: ModelClient,
        prompts: PromptManager,
        metadata_store: KVStore,
        workspace_store: KVStore
    ):
        self.model = model
        self.prompts = prompts
        self.metadata_store = metadata_store
        self.workspace_store = workspace_store

    # ------------------------------------------------------------------
    # Model-backed operations
    # ------------------------------------------------------------------

    def chat(
        self,
        user_id: str,
        message: str,
        context: Optional[List[Dict[str, str]]] = None,
        project_type: str = "nextjs"
    ) -> Dict[str, Any]:
        """
        Answer a chat message with the project-kind system prompt.

        Only the last CHAT_CONTEXT_MESSAGES context messages are forwarded.
        """
        system_prompt = self.prompts.system_prompt_for(project_type)
        history = list(context or [])[-config.CHAT_CONTEXT_MESSAGES:]
        messages = [
            {"role": "system", "content": system_prompt.content},
            *history,
            {"role": "user", "content": message},
        ]

        self.log_interaction(user_id, "chat", {"projectType": project_type, "messageLength": len(message)})

        result = self.model.run(
            messages,
            max_tokens=config.CHAT_MAX_TOKENS,
            temperature=config.CHAT_TEMPERATURE
        )
        return {"response": result.response, "usage": result.usage, "timestamp": _now_iso()}

    def generate_project(
        self,
        user_id: str,
        requirements: str,
        framework: str = "nextjs",
        features: str = "",
        project_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Generate a project, persist its metadata and files, return both.

        The reply is read as JSON first; replies without usable JSON go
        through the fenced-block fallback parser.
        """
        prompt = self.prompts.render_task_prompt("generate_project", {
            "framework": framework,
            "project_name": project_name or DEFAULT_PROJECT_NAME,
            "requirements": requirements,
            "features": features,
        })
        result = self.model.run([{"role": "user", "content": prompt}], max_tokens=config.GENERATE_MAX_TOKENS)

        project = normalize_project(extract_json_object(result.response), framework, project_name)
        if project is None:
            logger.info("Reply held no project JSON, using fallback parser")
            project = parse_project_structure(result.response, framework)

        project_id = generate_project_id()
        now = _now_iso()
        metadata = {
            "id": project_id,
            "userId": user_id,
            "name": project_name or "New Project",
            "framework": framework,
            "createdAt": now,
            "updatedAt": now,
            "fileCount": len(project.get("structure", [])),
        }

        self.metadata_store.put(project_metadata_key(user_id, project_id), json.dumps(metadata))
        self.workspace_store.put(project_blob_key(project_id), json.dumps(project))
        logger.info(f"Generated project {project_id} ({metadata['fileCount']} files) for {user_id}")

        self.log_interaction(user_id, "generate_project", {
            "framework": framework,
            "projectId": project_id,
            "fileCount": metadata["fileCount"],
        })

        return {
            "projectId": project_id,
            "metadata": metadata,
            "project": project,
            "rawResponse": result.response,
        }

    def fix_code(
        self,
        user_id: str,
        code: str,
        error: str,
        file_name: Optional[str] = None,
        requirements: str = ""
    ) -> Dict[str, Any]:
        """Ask the model to repair a piece of code."""
        prompt = self.prompts.render_task_prompt("fix_code", {
            "file_name": file_name or "unknown file",
            "error": error,
            "code": code,
            "requirements": requirements,
        })
        result = self.model.run([{"role": "user", "content": prompt}], max_tokens=config.FIX_MAX_TOKENS)

        fix = extract_json_object(result.response)
        if not isinstance(fix, dict):
            fix = parse_fix_response(result.response)

        self.log_interaction(user_id, "fix_code", {
            "fileName": file_name,
            "errorLength": len(error) if error else None,
        })
        return {**fix, "timestamp": _now_iso()}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_workspace(
        self,
        user_id: str,
        project_id: str,
        files: Any,
        current_file: Optional[str] = None,
        cursor_position: Any = None
    ) -> str:
        """Store an editor workspace; returns the lastSaved timestamp."""
        workspace = {
            "userId": user_id,
            "projectId": project_id,
            "files": files,
            "currentFile": current_file,
            "cursorPosition": cursor_position,
            "lastSaved": _now_iso(),
        }
        self.workspace_store.put(workspace_key(user_id, project_id), json.dumps(workspace))
        return workspace["lastSaved"]

    def load_workspace(self, user_id: str, project_id: str) -> Optional[Dict[str, Any]]:
        raw = self.workspace_store.get(workspace_key(user_id, project_id))
        return json.loads(raw) if raw is not None else None

    def list_user_projects(self, user_id: str) -> List[Dict[str, Any]]:
        """Project metadata for a user, most recently updated first."""
        prefix = project_metadata_key(user_id, "")
        projects = []
        for key in self.metadata_store.list(prefix):
            # "projects:a:" also prefixes the keys of user "a:b"
            if ":" in key[len(prefix):]:
                continue
            raw = self.metadata_store.get(key)
            if raw is not None:
                projects.append(json.loads(raw))
        projects.sort(key=lambda p: p.get("updatedAt") or "", reverse=True)
        return projects

    def load_project(self, project_id: str) -> Optional[Tuple[List[ProjectFile], ProjectDescriptor]]:
        """Load a generated project as (file set, descriptor), None if absent."""
        raw = self.workspace_store.get(project_blob_key(project_id))
        if raw is None:
            return None
        project = json.loads(raw)
        descriptor = ProjectDescriptor(
            name=project.get("name") or DEFAULT_PROJECT_NAME,
            framework=project.get("framework") or "plain"
        )
        return file_set_from_structure(project.get("structure") or []), descriptor

    def log_interaction(self, user_id: str, action: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record an analytics entry. Store failures are logged, not raised."""
        now = datetime.now(timezone.utc)
        entry = {
            "userId": user_id,
            "action": action,
            "timestamp": now.isoformat(),
            "expiresAt": (now + timedelta(days=config.INTERACTION_LOG_RETENTION_DAYS)).isoformat(),
            "metadata": metadata or {},
        }
        try:
            self.metadata_store.put(f"logs:{user_id}:{int(time.time() * 1000)}", json.dumps(entry))
        except StoreError as e:
            logger.error(f"Logging error: {e}")
