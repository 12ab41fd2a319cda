"""Data model for generated files, project descriptors and preview sessions.

JSON payloads use camelCase field names (``fileSet``, ``createdAt``); the
Python attributes are snake_case. Always dump with ``by_alias=True``.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from errors import InvalidFileSetError

# Framework names that switch entry resolution to component files
COMPONENT_FRAMEWORKS = ("nextjs", "react")

DEFAULT_PROJECT_NAME = "Untitled Project"
DEFAULT_FRAMEWORK = "plain"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectFile(CamelModel):
    """One entry of a File Set."""

    path: str
    type: Literal["file", "folder"] = "file"
    content: Optional[str] = None
    language: str = "txt"

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("path must be non-empty")
        if "\\" in value:
            raise ValueError("path must use forward slashes")
        return value

    @model_validator(mode="after")
    def _check_content(self) -> "ProjectFile":
        if self.type == "folder":
            if self.content:
                raise ValueError(f"folder '{self.path}' cannot carry content")
            self.content = None
        elif self.content is None:
            self.content = ""
        return self

    @property
    def is_file(self) -> bool:
        return self.type == "file"


class ProjectDescriptor(CamelModel):
    """Display name plus the framework used to pick a rendering strategy."""

    name: str = DEFAULT_PROJECT_NAME
    framework: str = DEFAULT_FRAMEWORK

    @property
    def is_component_based(self) -> bool:
        return self.framework.lower() in COMPONENT_FRAMEWORKS


def validate_file_set(files: List[ProjectFile]) -> List[ProjectFile]:
    """
    Check File Set invariants and return the files unchanged.

    Raises:
        InvalidFileSetError: If two entries share a path
    """
    seen = set()
    for entry in files:
        if entry.path in seen:
            raise InvalidFileSetError(f"Duplicate path in file set: {entry.path}")
        seen.add(entry.path)
    return files


class PreviewSession(CamelModel):
    """Immutable snapshot of a File Set addressable by an opaque id."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    owner_id: str
    source_project_id: str = ""
    file_set: List[ProjectFile] = Field(default_factory=list)
    project_descriptor: ProjectDescriptor = Field(default_factory=ProjectDescriptor)
    created_at: datetime
    expires_at: datetime

    @field_validator("file_set")
    @classmethod
    def _check_file_set(cls, value: List[ProjectFile]) -> List[ProjectFile]:
        # InvalidFileSetError is a ValueError, so pydantic reports it as a validation error
        return validate_file_set(value)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
