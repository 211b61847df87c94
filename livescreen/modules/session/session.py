import asyncio
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from livescreen.exceptions import InfrastructureError, SessionNotFoundError

logger = logging.getLogger("livescreen.session")

# Never copied into a session workspace
COPY_IGNORE_PATTERNS = (
    "node_modules",
    "__tests__",
    "*.test.ts",
    "*.test.tsx",
    "*.spec.ts",
    "*.spec.tsx",
    ".DS_Store",
    ".git",
)


class WorkspaceStatus(str, Enum):
    """Lifecycle status of a workspace session."""

    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"


class ModuleKindRegistry:
    """
    Remembers the kind each module file was first discovered with.

    A module that starts life as a screen's primary component stays primary
    for the lifetime of the session, and a helper never becomes primary, so
    only primary modules ever bind the reserved export name.
    """

    def __init__(self):
        self._kinds: Dict[str, str] = {}

    def classify(self, relative_path: str, proposed_kind: str) -> str:
        """Return the recorded kind for a file, recording proposed_kind on first sight."""
        kind = self._kinds.setdefault(relative_path, proposed_kind)
        if kind != proposed_kind:
            logger.debug(
                f"Module {relative_path} keeps kind '{kind}' (proposed '{proposed_kind}')"
            )
        return kind

    def kind_of(self, relative_path: str) -> Optional[str]:
        return self._kinds.get(relative_path)

    def clear(self) -> None:
        self._kinds.clear()

    def __len__(self) -> int:
        return len(self._kinds)


@dataclass
class WorkspaceSession:
    """One isolated editing context bound to an on-disk workspace copy."""

    session_id: str
    workspace_root: Path
    created_at: datetime
    source_path: Optional[Path] = None
    owns_workspace: bool = False
    status: WorkspaceStatus = WorkspaceStatus.INITIALIZING
    kinds: ModuleKindRegistry = field(default_factory=ModuleKindRegistry)
    notifier: Any = None  # ChangeNotifier, attached by the engine
    detach_listeners: List[Any] = field(default_factory=list)

    @property
    def src_root(self) -> Path:
        """The workspace's src/ directory when present, otherwise the root."""
        src = self.workspace_root / "src"
        return src if src.is_dir() else self.workspace_root

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "workspace_path": str(self.workspace_root),
            "source_path": str(self.source_path) if self.source_path else None,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }


class SessionStore:
    def __init__(self, sessions_dir: str):
        """
        Initialize session store.

        Args:
            sessions_dir: Directory under which copied workspaces are created
        """
        self.sessions_dir = Path(sessions_dir)
        self._sessions: Dict[str, WorkspaceSession] = {}

    async def create_session(
        self,
        source_path: Optional[str] = None,
        workspace_root: Optional[str] = None,
    ) -> WorkspaceSession:
        """
        Create a new workspace session.

        Args:
            source_path: Project to copy into a fresh isolated workspace
            workspace_root: Existing directory to edit in place (not copied)

        Returns:
            The new WorkspaceSession

        Logic:
        1. Generate UUID for session
        2. Copy the source tree (minus tests and node_modules) or adopt the root
        3. Register the session
        """
        session_id = str(uuid.uuid4())

        if workspace_root:
            root = Path(workspace_root).resolve()
            if not root.is_dir():
                raise InfrastructureError(
                    f"Workspace root does not exist: {root}", session_id=session_id
                )
            owns = False
        else:
            root = (self.sessions_dir / session_id).resolve()
            owns = True
            try:
                if source_path:
                    await asyncio.to_thread(
                        shutil.copytree,
                        Path(source_path),
                        root,
                        ignore=shutil.ignore_patterns(*COPY_IGNORE_PATTERNS),
                    )
                else:
                    await asyncio.to_thread(root.mkdir, parents=True, exist_ok=False)
            except OSError as e:
                raise InfrastructureError(
                    f"Failed to prepare workspace for session {session_id}: {e}",
                    session_id=session_id,
                ) from e

        session = WorkspaceSession(
            session_id=session_id,
            workspace_root=root,
            created_at=datetime.now(UTC),
            source_path=Path(source_path).resolve() if source_path else None,
            owns_workspace=owns,
        )
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id} at {root}")
        return session

    def get_session(self, session_id: str) -> Optional[WorkspaceSession]:
        """Get a session, or None if it does not exist."""
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> WorkspaceSession:
        """Get a session, raising SessionNotFoundError if it does not exist."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self) -> List[WorkspaceSession]:
        return sorted(self._sessions.values(), key=lambda s: s.created_at)

    async def remove_session(self, session_id: str, delete_files: bool = True) -> bool:
        """
        Forget a session and delete its copied workspace.

        Watchers and caches are released by the caller before this runs.

        Returns:
            True if the session existed
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        session.kinds.clear()
        if delete_files and session.owns_workspace:
            try:
                await asyncio.to_thread(shutil.rmtree, session.workspace_root)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise InfrastructureError(
                    f"Failed to delete workspace for session {session_id}: {e}",
                    session_id=session_id,
                ) from e

        logger.info(f"Removed session {session_id}")
        return True

    def __len__(self) -> int:
        return len(self._sessions)
