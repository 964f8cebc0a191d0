from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence

DEFAULT_PAGE_SIZE = 1000
DEFAULT_ROW_CAP = 200_000
DEFAULT_BATCH_SIZE = 500


async def paginate[T](
    fetch_page: Callable[[int, int], Awaitable[Sequence[T]]],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    row_cap: int = DEFAULT_ROW_CAP,
) -> list[T]:
    """Collect ``fetch_page(offset, limit)`` pages until a short page or ``row_cap`` rows."""
    if page_size <= 0 or row_cap <= 0:
        raise ValueError("page_size and row_cap must be positive")
    rows: list[T] = []
    offset = 0
    while offset < row_cap:
        limit = min(page_size, row_cap - offset)
        page = await fetch_page(offset, limit)
        rows.extend(page[:limit])
        if len(page) < limit:
            break
        offset += limit
    return rows


def chunked[T](items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be positive")
    return [items[start : start + size] for start in range(0, len(items), size)]


async def fetch_in_batches[T](
    ids: Iterable[str],
    fetch_batch: Callable[[list[str]], Awaitable[Sequence[T]]],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[T]:
    # Chunks run sequentially; an "in" filter with thousands of ids is too large for one request.
    unique = list(dict.fromkeys(i for i in ids if i))
    rows: list[T] = []
    for batch in chunked(unique, batch_size):
        rows.extend(await fetch_batch(list(batch)))
    return rows
