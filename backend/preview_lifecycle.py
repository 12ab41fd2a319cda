"""
Preview Session Lifecycle

Creates, looks up and lists preview sessions:

- create: assign id, snapshot file set + descriptor, stamp createdAt/expiresAt
- get: single store read by id
- list_for_owner: prefix scan of the owner's index

Sessions are immutable once written. Expiry is advisory unless
PREVIEW_ENFORCE_EXPIRY is enabled, in which case expired sessions read as
missing. Store failures propagate as StoreError; nothing is retried here.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import config
from guid_generator import generate_preview_id, is_valid_preview_id
from models import PreviewSession, ProjectDescriptor, ProjectFile, validate_file_set
from preview_store import PreviewSessionStore

logger = logging.getLogger(__name__)

# Owner ids become part of a storage prefix
OWNER_ID_PATTERN = re.compile(r'^[A-Za-z0-9_.@+:-]{1,128}$')

SESSION_STATUS_ACTIVE = "active"


def is_valid_owner_id(owner_id: str) -> bool:
    """True if the owner id can be used safely in a key prefix."""
    return bool(owner_id) and isinstance(owner_id, str) and bool(OWNER_ID_PATTERN.match(owner_id))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PreviewLifecycle:
    """Orchestrates preview session creation, lookup and listing."""

    def __init__(
        self,
        store: PreviewSessionStore,
        ttl_hours: int = config.PREVIEW_TTL_HOURS,
        enforce_expiry: bool = config.PREVIEW_ENFORCE_EXPIRY,
        clock: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = generate_preview_id
    ):
        """
        Initialize the lifecycle.

        Args:
            store: Session store adapter
            ttl_hours: Horizon used to compute expiresAt
            enforce_expiry: Treat expired sessions as missing on read
            clock: Returns the current UTC time
            id_factory: Produces fresh session ids
        """
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)
        self.enforce_expiry = enforce_expiry
        self._clock = clock
        self._id_factory = id_factory

    def create(
        self,
        owner_id: str,
        source_project_id: str,
        file_set: List[ProjectFile],
        project: ProjectDescriptor
    ) -> PreviewSession:
        """
        Snapshot a file set under a fresh session id.

        Args:
            owner_id: User creating the preview
            source_project_id: Project the files came from
            file_set: Files in generation order
            project: Name and framework of the project

        Returns:
            The stored PreviewSession

        Raises:
            ValueError: If owner_id is missing/unsafe or the file set is invalid
            StoreError: If the write fails
        """
        if not is_valid_owner_id(owner_id):
            raise ValueError("A valid owner id is required")
        validate_file_set(file_set)

        created_at = self._clock()
        session = PreviewSession(
            id=self._id_factory(),
            owner_id=owner_id,
            source_project_id=source_project_id or "",
            file_set=[entry.model_copy() for entry in file_set],
            project_descriptor=project.model_copy(),
            created_at=created_at,
            expires_at=created_at + self.ttl
        )
        self.store.save(session)
        logger.info(f"Created preview {session.id} (expires {session.expires_at.isoformat()})")
        return session

    def get(self, session_id: str) -> Optional[PreviewSession]:
        """
        Look up a session by id.

        Returns:
            PreviewSession, or None for malformed, unknown (or, when
            enforcement is on, expired) ids
        """
        if not is_valid_preview_id(session_id):
            logger.debug(f"Rejected malformed preview id: {session_id!r}")
            return None

        session = self.store.load(session_id)
        if session is None:
            return None
        if self.enforce_expiry and session.is_expired(self._clock()):
            logger.info(f"Preview {session_id} expired at {session.expires_at.isoformat()}")
            return None
        return session

    def list_for_owner(self, owner_id: str) -> List[PreviewSession]:
        """
        List an owner's sessions in store enumeration order.

        Index entries whose snapshot is missing are skipped.
        """
        if not is_valid_owner_id(owner_id):
            raise ValueError("A valid owner id is required")

        now = self._clock()
        sessions = []
        for session_id in self.store.list_ids(owner_id):
            session = self.store.load(session_id)
            if session is None:
                logger.warning(f"Owner index for {owner_id} points at missing preview {session_id}")
                continue
            if self.enforce_expiry and session.is_expired(now):
                continue
            sessions.append(session)
        return sessions

    @staticmethod
    def preview_url(session_id: str) -> str:
        """Public URL that renders the session."""
        return config.get_preview_url(session_id)

    def status(self, session: PreviewSession) -> Dict:
        """Status record returned by the preview-status endpoint."""
        return {
            "sessionId": session.id,
            "status": SESSION_STATUS_ACTIVE,
            "url": self.preview_url(session.id),
            "createdAt": session.created_at.isoformat(),
            "expiresAt": session.expires_at.isoformat(),
        }
