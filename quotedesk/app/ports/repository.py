from abc import ABC, abstractmethod
from typing import Any, List, Optional


class IQuoteRepository(ABC):

    @abstractmethod
    def get(self, quote_id: str) -> Optional[Any]:
        """Return the quote with ``quote_id`` or None."""

    @abstractmethod
    def get_for_update(self, quote_id: str) -> Optional[Any]:
        """Return the freshly loaded quote, row-locked where the database supports it."""

    @abstractmethod
    def add(self, quote: Any) -> Any:
        """Stage a new quote (and its children) in the current unit of work."""

    @abstractmethod
    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[Any]:
        pass

    @abstractmethod
    def list_all(self, limit: int = 100, offset: int = 0, status: Optional[str] = None) -> List[Any]:
        pass
