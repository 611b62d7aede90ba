"""Tests for the snowflake ID generator and cursor pagination helpers."""

import threading

import pytest

from src.cs_common.id_generator import SnowflakeIdGenerator, generate_id
from src.cs_common.pagination import cursor_decode, cursor_encode, split_page


class TestSnowflake:
    def test_ids_are_numeric_strings(self) -> None:
        assert generate_id().isdigit()

    def test_monotonic_within_one_generator(self) -> None:
        gen = SnowflakeIdGenerator(worker_id=3)
        ids = [int(gen.next_id()) for _ in range(5000)]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)

    def test_unique_across_threads(self) -> None:
        gen = SnowflakeIdGenerator(worker_id=1)
        out: list[str] = []
        lock = threading.Lock()

        def work() -> None:
            local = [gen.next_id() for _ in range(1000)]
            with lock:
                out.extend(local)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(out)) == 4000

    def test_clock_moving_backwards_keeps_ids_increasing(self, monkeypatch) -> None:
        gen = SnowflakeIdGenerator()
        times = iter([2_000_000_000_000, 1_999_999_999_000, 2_000_000_000_001])
        monkeypatch.setattr(gen, "_now_ms", lambda: next(times))
        first, second = int(gen.next_id()), int(gen.next_id())
        assert second > first

    @pytest.mark.parametrize("worker_id", [-1, 1024])
    def test_worker_id_range(self, worker_id: int) -> None:
        with pytest.raises(ValueError):
            SnowflakeIdGenerator(worker_id=worker_id)


class TestCursor:
    def test_round_trip(self) -> None:
        assert cursor_decode(cursor_encode(42)) == 42
        assert cursor_decode(cursor_encode("1234567890")) == "1234567890"

    @pytest.mark.parametrize("cursor", [None, "", "not-base64!!", "e30="])
    def test_garbage_decodes_to_none(self, cursor: str | None) -> None:
        assert cursor_decode(cursor) is None

    def test_split_page(self) -> None:
        assert split_page([1, 2, 3], 2) == ([1, 2], True)
        assert split_page([1, 2], 2) == ([1, 2], False)
        assert split_page([], 5) == ([], False)
