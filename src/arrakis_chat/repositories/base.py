"""Base store interface for client session state."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.models import API, Conversation


class SessionStore(ABC):
    """Holds the state a session exposes to the view layer."""

    @abstractmethod
    def get_conversation(self) -> Conversation:
        """Return the loaded conversation."""
        pass

    @abstractmethod
    def set_conversation(self, conversation: Conversation) -> None:
        """Replace the loaded conversation."""
        pass

    @abstractmethod
    def list_conversations(self) -> List[Conversation]:
        """Return the last conversation listing received from the backend."""
        pass

    @abstractmethod
    def set_conversations(self, conversations: List[Conversation]) -> None:
        """Replace the cached conversation listing."""
        pass

    @abstractmethod
    def get_system_prompt(self) -> str:
        pass

    @abstractmethod
    def set_system_prompt(self, content: str) -> None:
        pass

    @abstractmethod
    def get_api(self) -> API:
        """Return the provider/model selector used for new messages."""
        pass

    @abstractmethod
    def set_api(self, api: API) -> None:
        pass

    @abstractmethod
    def get_pending_fork(self) -> Optional[Conversation]:
        """Conversation as it was before an unconfirmed fork, if any."""
        pass

    @abstractmethod
    def set_pending_fork(self, conversation: Optional[Conversation]) -> None:
        pass
