from __future__ import annotations

from splash_dl.chunk_cache import ChunkCache

G1 = "11111111222222223333333344444444"
G2 = "AAAAAAAABBBBBBBBCCCCCCCCDDDDDDDD"


def _files(mb):
    mb.add_chunk(G1, b"HelloWorld")
    mb.add_chunk(G2, b"0123456789")
    mb.add_file("a.txt", [(G1, 0, 5), (G1, 5, 5)])
    mb.add_file("b.txt", [(G1, 0, 3), (G2, 0, 10)])
    return mb.manifest().files


def test_seed_counts_every_part(mb) -> None:
    cache = ChunkCache()
    cache.seed(_files(mb))
    assert cache.remaining_uses(G1) == 3
    assert cache.remaining_uses(G2) == 1
    assert cache.remaining_uses("unknown") == 0


def test_put_only_when_needed_again(mb) -> None:
    cache = ChunkCache()
    cache.seed(_files(mb))

    assert cache.put(G2, b"0123456789") is False
    assert G2 not in cache
    assert cache.get(G2) is None

    assert cache.put(G1, b"HelloWorld") is True
    assert cache.get(G1) == b"HelloWorld"
    assert len(cache) == 1
    assert cache.resident_bytes == 10


def test_consume_evicts_at_zero(mb) -> None:
    cache = ChunkCache()
    cache.seed(_files(mb))
    cache.put(G1, b"HelloWorld")

    assert cache.consume(G1) == 2
    assert cache.consume(G1) == 1
    assert G1 in cache
    assert cache.consume(G1) == 0
    assert G1 not in cache
    assert cache.remaining_uses(G1) == 0
    assert cache.resident_bytes == 0
    assert cache.stats.evictions == 1

    # extra consumes never go negative
    assert cache.consume(G1) == 0


def test_consume_file_skips_get_and_put(mb) -> None:
    files = _files(mb)
    cache = ChunkCache()
    cache.seed(files)
    cache.put(G1, b"HelloWorld")

    cache.consume_file(files[0])
    assert cache.remaining_uses(G1) == 1
    assert G1 in cache
    assert cache.stats.hits == 0 and cache.stats.misses == 0

    cache.consume_file(files[1])
    assert cache.remaining_uses(G1) == 0
    assert cache.remaining_uses(G2) == 0
    assert len(cache) == 0
