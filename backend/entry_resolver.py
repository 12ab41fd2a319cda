"""Entry resolution - picks the markup entry and splits styles from scripts."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models import ProjectDescriptor, ProjectFile

MARKUP_EXTENSIONS = (".html",)
STYLE_EXTENSIONS = (".css",)
SCRIPT_EXTENSIONS = (".js",)
COMPONENT_EXTENSIONS = (".jsx", ".tsx")


@dataclass
class ResolvedEntry:
    """Result of resolving a File Set: one markup file plus ordered styles and scripts."""
    markup_file: Optional[ProjectFile] = None
    style_files: List[ProjectFile] = field(default_factory=list)
    script_files: List[ProjectFile] = field(default_factory=list)


def is_component_project(project: ProjectDescriptor) -> bool:
    """True when scripts are .jsx/.tsx components rather than plain .js."""
    return project.is_component_based


def extension_rules(project: ProjectDescriptor) -> Dict[str, List[str]]:
    """
    Extension rules used for resolution.

    The preview bootstrap receives this dict as JSON so the browser
    resolves entries with exactly the same rules as the server.
    """
    scripts = COMPONENT_EXTENSIONS if is_component_project(project) else SCRIPT_EXTENSIONS
    return {
        "markup": list(MARKUP_EXTENSIONS),
        "style": list(STYLE_EXTENSIONS),
        "script": list(scripts),
    }


def resolve_entry(file_set: List[ProjectFile], project: ProjectDescriptor) -> ResolvedEntry:
    """
    Resolve the entry point of a File Set in a single scan.

    Only the first markup file is used; later ones are ignored. Folder
    entries never match.

    Args:
        file_set: Files in generation order
        project: Descriptor selecting the script strategy

    Returns:
        ResolvedEntry with files in File Set order
    """
    rules = extension_rules(project)
    markup_ext = tuple(rules["markup"])
    style_ext = tuple(rules["style"])
    script_ext = tuple(rules["script"])

    resolved = ResolvedEntry()
    for entry in file_set:
        if not entry.is_file:
            continue
        path = entry.path
        if path.endswith(markup_ext):
            if resolved.markup_file is None:
                resolved.markup_file = entry
        elif path.endswith(style_ext):
            resolved.style_files.append(entry)
        elif path.endswith(script_ext):
            resolved.script_files.append(entry)
    return resolved
