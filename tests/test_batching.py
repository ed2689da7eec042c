import pytest

from batching import batched
from errors import InvalidArgumentError


@pytest.mark.parametrize("length, size", [(0, 3), (1, 1), (5, 2), (6, 3), (7, 10), (20, 20), (41, 20)])
def test_batched_chunks_cover_source_in_order(length: int, size: int) -> None:
    source = list(range(length))

    chunks = list(batched(source, size))

    assert [item for chunk in chunks for item in chunk] == source
    assert all(chunks)
    assert all(len(chunk) == size for chunk in chunks[:-1])
    if chunks:
        assert 1 <= len(chunks[-1]) <= size


def test_batched_empty_source_yields_no_chunks() -> None:
    assert list(batched([], 5)) == []


def test_batched_last_chunk_is_short() -> None:
    assert list(batched("abcdefg", 3)) == [["a", "b", "c"], ["d", "e", "f"], ["g"]]


@pytest.mark.parametrize("size", [0, -1, 1.5, "2", True, None])
def test_batched_rejects_invalid_size_at_call_time(size) -> None:
    """Validation happens before iteration starts."""
    with pytest.raises(InvalidArgumentError):
        batched([1, 2, 3], size)


def test_batched_is_lazy_over_generators() -> None:
    consumed: list[int] = []

    def source():
        for i in range(10):
            consumed.append(i)
            yield i

    chunks = batched(source(), 4)
    assert consumed == []

    assert next(chunks) == [0, 1, 2, 3]
    assert consumed == [0, 1, 2, 3]


def test_batched_single_use_when_source_is_iterator() -> None:
    chunks = batched(iter(range(4)), 2)

    assert list(chunks) == [[0, 1], [2, 3]]
    assert list(chunks) == []


def test_batched_restartable_when_source_is_list() -> None:
    source = [1, 2, 3]

    assert list(batched(source, 2)) == list(batched(source, 2))
