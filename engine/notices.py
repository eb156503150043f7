"""Notice sink interface and the default in-memory collector."""

from __future__ import annotations

import logging
from collections import deque
from typing import Protocol

from config import DEBUG_NOTICES, NOTICE_HISTORY_LIMIT
from models.game_state import Notice, NoticeKind, NoticeLevel

logger = logging.getLogger(__name__)


class NoticeSink(Protocol):
    """Anything that accepts outward notices (message log, loot spawner...)."""

    def emit(self, notice: Notice) -> None: ...


class NoticeLog:
    """Collects notices in order, keeping a bounded history."""

    def __init__(self, limit: int = NOTICE_HISTORY_LIMIT) -> None:
        self._notices: deque[Notice] = deque(maxlen=limit)

    def emit(self, notice: Notice) -> None:
        self._notices.append(notice)

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def of_kind(self, kind: NoticeKind) -> list[Notice]:
        return [n for n in self._notices if n.kind == kind]

    def messages(self) -> list[str]:
        return [n.message for n in self._notices]

    def clear(self) -> None:
        self._notices.clear()

    def __len__(self) -> int:
        return len(self._notices)


def emit_debug(sink: NoticeSink, message: str, **details) -> None:
    """Report invalid input without interrupting the turn."""
    logger.debug(message)
    if not DEBUG_NOTICES:
        return
    sink.emit(Notice(
        kind=NoticeKind.INVALID_INPUT,
        level=NoticeLevel.DEBUG,
        message=message,
        details=details,
    ))
