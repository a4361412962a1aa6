import asyncio
import logging

from loan_engine.services.side_effects import SideEffectDispatcher


async def test_dispatch_returns_before_the_work_runs() -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow() -> None:
        started.set()
        await release.wait()

    dispatcher = SideEffectDispatcher(concurrency=1)
    dispatcher.dispatch(slow, name="slow")
    assert dispatcher.pending == 1

    await asyncio.wait_for(started.wait(), timeout=1)
    release.set()
    await dispatcher.drain()
    assert dispatcher.pending == 0


async def test_failures_are_logged_and_not_propagated(caplog) -> None:
    logger = logging.getLogger("tests.side_effects")
    dispatcher = SideEffectDispatcher(concurrency=2, logger=logger)

    async def broken() -> None:
        raise RuntimeError("smtp down")

    with caplog.at_level(logging.INFO, logger="tests.side_effects"):
        task = dispatcher.dispatch(broken, name="agreement-delivery:abc")
        await dispatcher.drain()

    assert task.done()
    assert task.exception() is None
    failures = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert len(failures) == 1
    assert "agreement-delivery:abc" in failures[0].getMessage()
    assert failures[0].exc_info is not None


async def test_concurrency_is_bounded() -> None:
    running = 0
    peak = 0

    async def work() -> None:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    dispatcher = SideEffectDispatcher(concurrency=2)
    for index in range(6):
        dispatcher.dispatch(work, name=f"work-{index}")
    await dispatcher.drain()

    assert peak == 2


async def test_nothing_is_retried() -> None:
    attempts = 0

    async def flaky() -> None:
        nonlocal attempts
        attempts += 1
        raise ValueError("nope")

    dispatcher = SideEffectDispatcher(concurrency=1, logger=logging.getLogger("tests.side_effects"))
    dispatcher.dispatch(flaky, name="flaky")
    await dispatcher.drain()

    assert attempts == 1
