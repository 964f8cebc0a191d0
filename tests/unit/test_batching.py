from __future__ import annotations

import pytest

from kpis.core.utils.batching import chunked, fetch_in_batches, paginate

pytestmark = pytest.mark.unit


class FakeTable:
    def __init__(self, size: int) -> None:
        self.rows = list(range(size))
        self.calls: list[tuple[int, int]] = []

    async def page(self, offset: int, limit: int) -> list[int]:
        self.calls.append((offset, limit))
        return self.rows[offset : offset + limit]


@pytest.mark.asyncio
async def test_paginate_stops_on_short_page():
    table = FakeTable(2500)
    rows = await paginate(table.page, page_size=1000, row_cap=200_000)

    assert rows == table.rows
    assert table.calls == [(0, 1000), (1000, 1000), (2000, 1000)]


@pytest.mark.asyncio
async def test_paginate_never_exceeds_row_cap():
    table = FakeTable(5000)
    rows = await paginate(table.page, page_size=1000, row_cap=2500)

    assert len(rows) == 2500
    assert table.calls[-1] == (2000, 500)


@pytest.mark.asyncio
async def test_paginate_rejects_non_positive_sizes():
    table = FakeTable(1)
    with pytest.raises(ValueError):
        await paginate(table.page, page_size=0)


def test_chunked_splits_evenly():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []


@pytest.mark.asyncio
async def test_fetch_in_batches_dedupes_and_chunks_sequentially():
    seen: list[list[str]] = []

    async def fetch(batch: list[str]) -> list[str]:
        seen.append(batch)
        return [f"row:{item}" for item in batch]

    ids = [f"u{i}" for i in range(1200)] + ["u0", "u1", ""]
    rows = await fetch_in_batches(ids, fetch, batch_size=500)

    assert [len(batch) for batch in seen] == [500, 500, 200]
    assert len(rows) == 1200
    assert rows[0] == "row:u0"


@pytest.mark.asyncio
async def test_fetch_in_batches_with_no_ids_makes_no_calls():
    calls = 0

    async def fetch(batch: list[str]) -> list[str]:
        nonlocal calls
        calls += 1
        return []

    assert await fetch_in_batches([], fetch) == []
    assert calls == 0
