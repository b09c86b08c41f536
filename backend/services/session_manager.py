"""
Session manager service for keeping live crop sessions
"""

import logging
import uuid
from typing import Any, Dict, Optional

from core.config import settings
from services.image_loader import ImageLoaderService
from services.session import SessionController
from services.session_config import resolve_config
from services.storage import StorageService, storage_service
from utils.errors import ImageLoadError, SessionLimitError, SessionNotFoundError
from utils.file_utils import remove_directory

logger = logging.getLogger(__name__)


class SessionManager:
    """Creates, looks up and destroys crop sessions"""

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        max_sessions: Optional[int] = None,
        load_timeout: Optional[float] = None,
        frame_interval_ms: Optional[int] = None
    ):
        self.storage = storage or storage_service
        self.max_sessions = max_sessions or settings.MAX_SESSIONS
        self.loader = ImageLoaderService(
            self.storage,
            timeout=load_timeout if load_timeout is not None else settings.IMAGE_LOAD_TIMEOUT
        )
        interval_ms = frame_interval_ms if frame_interval_ms is not None else settings.FRAME_INTERVAL_MS
        self.frame_interval = interval_ms / 1000
        self.sessions: Dict[str, SessionController] = {}

    async def create(self, config: Dict[str, Any]) -> SessionController:
        """
        Create a session and perform its first image load.

        A failed first load still returns the session in the failed state so
        the caller can retry with a new src.
        """
        if len(self.sessions) >= self.max_sessions:
            raise SessionLimitError(
                f"Session limit of {self.max_sessions} reached",
                details={"max_sessions": self.max_sessions}
            )

        # Validate before anything touches the filesystem
        resolved = resolve_config(config)

        session_id = uuid.uuid4().hex
        container = self.storage.session_dir(session_id)
        session = SessionController(
            container,
            resolved,
            loader=self.loader.load,
            frame_interval=self.frame_interval,
            session_id=session_id
        )
        self.sessions[session_id] = session
        logger.info(f"Created session {session_id}")

        try:
            await session.start()
        except ImageLoadError:
            # Already reported through the session's error event and state
            pass

        return session

    def get(self, session_id: str) -> SessionController:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def destroy(self, session_id: str, remove_exports: bool = True) -> None:
        session = self.sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.destroy()
        if remove_exports:
            remove_directory(session.container)

    async def shutdown(self) -> None:
        """Destroy every live session"""
        for session_id in list(self.sessions):
            self.destroy(session_id, remove_exports=False)
        logger.info("All sessions destroyed")

    def __len__(self) -> int:
        return len(self.sessions)


# Singleton instance
session_manager = SessionManager()


def get_session_manager() -> SessionManager:
    """FastAPI dependency returning the process-wide session manager"""
    return session_manager
