import asyncio
import random

import httpx
import pytest

from wpcrawler.scheduler import FetchRequest, FetchScheduler


def test_max_concurrent_must_be_positive(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200))
    for value in (0, -1, 1.5, None, True):
        with pytest.raises(ValueError):
            FetchScheduler(fetcher, value)


@pytest.mark.asyncio
async def test_never_exceeds_concurrency_limit(make_fetcher):
    state = {'active': 0, 'peak': 0}

    async def handler(request):
        state['active'] += 1
        state['peak'] = max(state['peak'], state['active'])
        await asyncio.sleep(random.uniform(0, 0.01))
        state['active'] -= 1
        return httpx.Response(200, content=request.url.path.encode())

    fetcher = make_fetcher(handler)
    scheduler = FetchScheduler(fetcher, max_concurrent=3)
    requests = [FetchRequest(f'https://wordpress.org/plugins/p{i}/developers/', extra_info=i) for i in range(25)]
    seen = []

    async with fetcher:
        completed = await scheduler.run(requests, lambda request, result, s: seen.append(request.extra_info))

    assert completed == 25
    assert sorted(seen) == list(range(25))
    assert state['peak'] <= 3
    assert scheduler.max_in_flight <= 3
    assert scheduler.in_flight == 0


@pytest.mark.asyncio
async def test_sliding_window_dispatches_as_slots_free(make_fetcher):
    release_slow = asyncio.Event()
    started = []

    async def handler(request):
        started.append(request.url.path)
        if request.url.path == '/slow':
            await release_slow.wait()
        return httpx.Response(200)

    fetcher = make_fetcher(handler)
    scheduler = FetchScheduler(fetcher, max_concurrent=2)
    requests = [FetchRequest('https://example.com/slow')] + [
        FetchRequest(f'https://example.com/fast{i}') for i in range(5)
    ]

    def on_complete(request, result, s):
        # every fast request finishes while the slow one still holds its slot
        if s.completed == 5:
            release_slow.set()

    async with fetcher:
        await scheduler.run(requests, on_complete)

    assert len(started) == 6
    assert scheduler.completed == 6


@pytest.mark.asyncio
async def test_callback_sees_progress_and_errors(make_fetcher):
    def handler(request):
        if request.url.host == 'down.example':
            raise httpx.ConnectError('connection refused')
        return httpx.Response(404 if 'missing' in request.url.path else 200, content=b'body')

    fetcher = make_fetcher(handler)
    scheduler = FetchScheduler(fetcher, max_concurrent=2)
    requests = [
        FetchRequest('https://example.com/ok', 'ok'),
        FetchRequest('https://example.com/missing', 'missing'),
        FetchRequest('https://down.example/', 'down'),
    ]
    calls = []

    def on_complete(request, result, s):
        calls.append((request.extra_info, result.error is not None, result.status_code, result.content, s.completed))

    async with fetcher:
        await scheduler.run(requests, on_complete)

    by_ref = {call[0]: call for call in calls}
    assert by_ref['ok'][1:4] == (False, 200, b'body')
    assert by_ref['missing'][1:4] == (False, 404, b'body')
    assert by_ref['down'][1] is True
    assert sorted(call[4] for call in calls) == [1, 2, 3]
    assert scheduler.progress == 1.0


@pytest.mark.asyncio
async def test_bodies_are_released_after_callback(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200, content=b'big page'))
    scheduler = FetchScheduler(fetcher, max_concurrent=2)
    results = []

    def on_complete(request, result, s):
        assert result.content == b'big page'
        results.append(result)

    async with fetcher:
        await scheduler.run([FetchRequest(f'https://example.com/{i}') for i in range(4)], on_complete)

    assert all(result.content == b'' for result in results)


@pytest.mark.asyncio
async def test_callback_exception_aborts_run(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200))
    scheduler = FetchScheduler(fetcher, max_concurrent=2)

    def on_complete(request, result, s):
        raise RuntimeError('database is gone')

    async with fetcher:
        with pytest.raises(RuntimeError, match='database is gone'):
            await scheduler.run([FetchRequest(f'https://example.com/{i}') for i in range(10)], on_complete)

    assert scheduler.completed < 10


@pytest.mark.asyncio
async def test_empty_request_list(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200))
    scheduler = FetchScheduler(fetcher)

    async with fetcher:
        assert await scheduler.run([], lambda *args: None) == 0

    assert scheduler.progress == 0.0
