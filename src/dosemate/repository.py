"""Interfaz de repositorio para el historial de dosis."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from dosemate.model import HistoryEntry

HistoryCallback = Callable[[list[HistoryEntry]], None]
Unsubscribe = Callable[[], None]


class HistoryRepository(ABC):
    """Where saved calculations live (local store or a cloud backend).

    Subscribers receive the full history, newest first, right after
    subscribing and after every mutation.
    """

    def __init__(self) -> None:
        self._subscribers: list[HistoryCallback] = []

    @abstractmethod
    def append(self, entry: HistoryEntry) -> str:
        """Persist an entry.

        Returns:
            The id of the stored entry.
        """

    @abstractmethod
    def delete(self, entry_id: str) -> None:
        """Remove one entry (no-op when the id is unknown)."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def list_entries(self) -> list[HistoryEntry]:
        """Return all entries, newest first."""

    def subscribe(self, callback: HistoryCallback) -> Unsubscribe:
        """Register a listener and push the current snapshot to it.

        Returns:
            A function that removes the listener.
        """
        self._subscribers.append(callback)
        callback(self.list_entries())

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.list_entries()
        for callback in list(self._subscribers):
            callback(list(snapshot))
