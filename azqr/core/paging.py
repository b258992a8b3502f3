"""Shared paged listing with cooperative cancellation.

Scanners and the diagnostics index read every Azure listing through
:func:`list_all` / :func:`list_pages`, so cancellation is honoured the same
way everywhere: the token is checked before each page request.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from typing import Any, TypeVar

from azqr.core.errors import ScanCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Thread-safe cancellation flag shared by every unit of one run."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "Scan cancelled"

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Idempotent; the first reason wins."""
        if not self._event.is_set():
            if reason:
                self._reason = reason
            self._event.set()
            logger.info(f"Cancellation requested: {self._reason}")

    def raise_if_cancelled(self) -> None:
        """Raise ScanCancelledError if cancellation has been requested."""
        if self._event.is_set():
            raise ScanCancelledError(self._reason)


def list_pages(
    pages: Iterable[Iterable[T]],
    cancel_token: CancellationToken | None = None,
) -> list[T]:
    """Concatenate every page in the order the service returns them.

    Args:
        pages: Iterable of pages; each page is requested lazily on iteration
        cancel_token: Token checked before each page request

    Returns:
        All items of all pages

    Raises:
        ScanCancelledError: If the token is cancelled between pages
    """
    items: list[T] = []
    page_iterator: Iterator[Iterable[T]] = iter(pages)
    page_count = 0

    while True:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            page = next(page_iterator)
        except StopIteration:
            break
        items.extend(page)
        page_count += 1

    logger.debug(f"Listed {len(items)} items across {page_count} page(s)")
    return items


def list_all(
    item_paged: Any,
    cancel_token: CancellationToken | None = None,
) -> list[Any]:
    """List every item of an Azure SDK ``ItemPaged`` page by page."""
    return list_pages(item_paged.by_page(), cancel_token)
