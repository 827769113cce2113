"""Paging over driver cursors."""

from typing import Any, Iterable, Iterator


def iter_batches(documents: Iterable[dict[str, Any]], batch_size: int) -> Iterator[list[dict[str, Any]]]:
    """Yield consecutive pages of at most ``batch_size`` documents.

    The sequence is lazy and can be consumed once: the next page is only
    pulled from the cursor after the caller has asked for it, so at most one
    page is held in memory. The final page may be shorter; an empty source
    yields nothing.

    Raises:
        ValueError: If batch_size is not positive
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    page: list[dict[str, Any]] = []
    for document in documents:
        page.append(document)
        if len(page) >= batch_size:
            yield page
            page = []
    if page:
        yield page
