import asyncio

from casebot.core.registry import CaseRegistry
from casebot.scheduler.cleanup import run_cleanup_loop


async def test_cleanup_loop_sweeps_expired_cases():
    now = [0.0]
    registry = CaseRegistry(clock=lambda: now[0])
    case, _ = registry.get_or_create(1)
    now[0] = 1000.0

    task = asyncio.create_task(run_cleanup_loop(registry, ttl_seconds=900, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    task.cancel()

    assert 1 not in registry
    assert case.disposed


async def test_cleanup_loop_survives_a_failing_sweep():
    class FlakyRegistry:
        calls = 0

        def sweep_expired(self, ttl):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")
            return []

    registry = FlakyRegistry()
    task = asyncio.create_task(run_cleanup_loop(registry, ttl_seconds=1, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    task.cancel()

    assert registry.calls >= 2
