import asyncio
import threading

from chankura_gateway.infra.nonce import NonceCounter


def test_strictly_increasing():
    nonce = NonceCounter(seed=100, clock_ms=lambda: 0)
    values = [nonce.next() for _ in range(5)]
    assert values == [100, 101, 102, 103, 104]
    assert nonce.issued == 5


def test_seeded_from_wall_clock():
    nonce = NonceCounter(clock_ms=lambda: 1_700_000_000_000)
    assert nonce.next() == 1_700_000_000_000


def test_catches_up_with_clock():
    now = [5_000]
    nonce = NonceCounter(seed=10, clock_ms=lambda: now[0])
    assert nonce.next() == 5_000
    assert nonce.next() == 5_001
    now[0] = 9_000
    assert nonce.next() == 9_000
    # clock going backwards never lowers the value
    now[0] = 1
    assert nonce.next() == 9_001


def test_peek_does_not_consume():
    nonce = NonceCounter(seed=7, clock_ms=lambda: 0)
    assert nonce.peek() == 7
    assert nonce.peek() == 7
    assert nonce.next() == 7
    assert nonce.peek() == 8


def test_concurrent_threads_never_share_a_value():
    nonce = NonceCounter(seed=0, clock_ms=lambda: 0)
    seen = []
    lock = threading.Lock()

    def worker():
        local = [nonce.next() for _ in range(500)]
        with lock:
            seen.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 4000
    assert len(set(seen)) == 4000


def test_concurrent_tasks_unique():
    async def inner():
        nonce = NonceCounter(seed=0, clock_ms=lambda: 0)

        async def grab():
            await asyncio.sleep(0)
            return nonce.next()

        return await asyncio.gather(*(grab() for _ in range(50)))

    values = asyncio.run(inner())
    assert sorted(values) == list(range(50))
