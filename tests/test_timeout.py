"""Tests for warren/timeout.py — escalating idle timeout."""

import asyncio

from warren.timeout import EscalatingTimeout, TimeoutState, idle_window


def _timer(window, events, kill_delay=0.05):
    return EscalatingTimeout(
        window,
        on_terminate=lambda: events.append("term"),
        on_kill=lambda: events.append("kill"),
        kill_delay=kill_delay,
        label="test",
    )


class TestIdleWindow:
    def test_idle_plus_grace_wins(self):
        # 1s configured, 2s idle, 30s grace -> 32s
        assert idle_window(1.0, 2.0, 30.0) == 32.0

    def test_configured_wins(self):
        assert idle_window(100.0, 2.0, 30.0) == 100.0


class TestEscalatingTimeout:
    def test_terminate_then_kill(self):
        events = []

        async def scenario():
            t = _timer(0.05, events, kill_delay=0.3)
            t.start()
            await asyncio.sleep(0.15)
            assert t.state is TimeoutState.FIRING
            assert t.timed_out
            await asyncio.sleep(0.4)
            return t

        t = asyncio.run(scenario())
        assert events == ["term", "kill"]
        assert t.state is TimeoutState.DEAD

    def test_rearm_extends_window(self):
        events = []

        async def scenario():
            t = _timer(0.2, events)
            t.start()
            for _ in range(4):
                await asyncio.sleep(0.05)
                assert t.rearm()
            assert events == []
            assert not t.timed_out
            t.cancel()

        asyncio.run(scenario())

    def test_rearm_ignored_after_firing(self):
        events = []

        async def scenario():
            t = _timer(0.02, events, kill_delay=0.3)
            t.start()
            await asyncio.sleep(0.1)
            assert t.rearm() is False
            await asyncio.sleep(0.4)

        asyncio.run(scenario())
        assert events == ["term", "kill"]

    def test_cancel_before_fire(self):
        events = []

        async def scenario():
            t = _timer(0.03, events)
            t.start()
            t.cancel()
            await asyncio.sleep(0.1)
            return t

        t = asyncio.run(scenario())
        assert events == []
        assert not t.timed_out

    def test_cancel_after_fire_keeps_timed_out(self):
        events = []

        async def scenario():
            t = _timer(0.02, events, kill_delay=0.3)
            t.start()
            await asyncio.sleep(0.1)
            t.cancel()  # child exited after SIGTERM
            await asyncio.sleep(0.4)
            return t

        t = asyncio.run(scenario())
        assert events == ["term"]
        assert t.timed_out
        assert t.rearm() is False
