from __future__ import annotations

import pytest

from token_radar.datalake.schemas import TokenRecord
from token_radar.datalake.token_store import TokenStore
from token_radar.ingestion.buffer import IngestionBuffer


def _batch(prefix: str, size: int) -> list[TokenRecord]:
    return [TokenRecord(uri=f"{prefix}{index}", mint=f"mint-{prefix}{index}") for index in range(size)]


def test_flush_of_empty_buffer_is_noop():
    store = TokenStore(_batch("seed", 2))
    buffer = IngestionBuffer()
    assert buffer.flush(store) == 0
    assert [record.uri for record in store.get_all()] == ["seed0", "seed1"]


def test_paused_flush_leaves_store_and_accumulates():
    store = TokenStore()
    buffer = IngestionBuffer()
    buffer.pause()
    sizes = []
    for record in _batch("p", 3):
        buffer.add(record)
        assert buffer.flush(store) == 0
        sizes.append(len(buffer))
    assert sizes == [1, 2, 3]
    assert len(store) == 0

    buffer.resume()
    assert buffer.flush(store) == 3
    assert len(buffer) == 0
    assert [record.uri for record in store.get_all()] == ["p0", "p1", "p2"]


def test_batches_are_prepended_as_units():
    store = TokenStore()
    buffer = IngestionBuffer()
    batches = [_batch("a", 2), _batch("b", 3), _batch("c", 1)]
    for batch in batches:
        for record in batch:
            buffer.add(record)
        buffer.flush(store)
    expected = [record.uri for record in batches[2] + batches[1] + batches[0]]
    assert [record.uri for record in store.get_all()] == expected


def test_update_interval_presets():
    buffer = IngestionBuffer()
    assert buffer.update_interval_seconds == 1
    for seconds in (5, 10, 20, 1):
        buffer.set_update_interval(seconds)
        assert buffer.update_interval_seconds == seconds
    with pytest.raises(ValueError):
        buffer.set_update_interval(3)
    with pytest.raises(ValueError):
        IngestionBuffer(update_interval_seconds=0)


def test_store_lookups_and_snapshot_isolation():
    store = TokenStore()
    store.add_batch([TokenRecord(uri="old", mint="m1"), TokenRecord(uri="nomint")])
    store.add_batch([TokenRecord(uri="new", mint="m1")])
    assert store.get_by_mint("m1").uri == "new"
    assert store.get_by_mint("missing") is None
    assert store.get_by_mint("") is None
    assert store.get_by_uri("nomint").mint is None

    snapshot = store.get_all()
    snapshot.clear()
    assert len(store) == 3


def test_duplicate_uris_are_kept():
    store = TokenStore()
    store.add_batch([TokenRecord(uri="dup"), TokenRecord(uri="dup")])
    assert len(store) == 2
    assert store.add_batch([]) == 0
