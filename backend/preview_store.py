"""Preview Session Store - persists immutable preview snapshots by id."""

import logging
from typing import List, Optional

from kv_store import KVStore
from models import PreviewSession

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "previews/"
OWNER_INDEX_PREFIX = "preview-owners/"


def snapshot_key(session_id: str) -> str:
    """Key holding the serialized session."""
    return f"{SNAPSHOT_PREFIX}{session_id}.json"


def owner_prefix(owner_id: str) -> str:
    """Prefix under which an owner's session ids are indexed."""
    return f"{OWNER_INDEX_PREFIX}{owner_id}/"


class PreviewSessionStore:
    """
    Maps session ids to serialized snapshots.

    Layout:
    ```
    previews/<session_id>.json              # full PreviewSession JSON
    preview-owners/<owner_id>/<session_id>  # owner index entry (value: session id)
    ```
    """

    def __init__(self, store: KVStore):
        self.store = store

    def save(self, session: PreviewSession) -> None:
        """Write the snapshot, then its owner index entry."""
        payload = session.model_dump_json(by_alias=True)
        self.store.put(snapshot_key(session.id), payload)
        self.store.put(f"{owner_prefix(session.owner_id)}{session.id}", session.id)
        logger.info(f"Saved preview {session.id} for owner {session.owner_id} ({len(session.file_set)} files)")

    def load(self, session_id: str) -> Optional[PreviewSession]:
        """Read a snapshot; None when the id was never stored."""
        raw = self.store.get(snapshot_key(session_id))
        if raw is None:
            return None
        return PreviewSession.model_validate_json(raw)

    def list_ids(self, owner_id: str) -> List[str]:
        """Session ids indexed for an owner, in store enumeration order."""
        prefix = owner_prefix(owner_id)
        return [key[len(prefix):] for key in self.store.list(prefix)]
