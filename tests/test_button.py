"""Side button edge detection and debounce."""
from __future__ import annotations

import asyncio

from conftest import FakeClock
from reaction_timer.inputs import SideButton, sysfs_gpio_provider


def scripted_provider(readings):
    values = iter(readings)

    async def _provider():
        return next(values)

    return _provider


def make_button(readings, clock, debounce_ms=50):
    presses = []
    button = SideButton(
        pressed_provider=scripted_provider(readings),
        debounce_ms=debounce_ms,
        poll_interval_ms=1,
        clock=clock,
    )

    async def _record():
        presses.append(clock.now)

    button.register_callback(_record)
    return button, presses


class TestSideButton:
    async def test_emits_on_press_edge_only(self):
        clock = FakeClock()
        button, presses = make_button([False, True, True, True, False, False], clock)
        results = []
        for _ in range(6):
            clock.advance_ms(100)
            results.append(await button.poll_once())
        assert results == [False, True, False, False, False, False]
        assert len(presses) == 1

    async def test_bounce_inside_debounce_window_ignored(self):
        clock = FakeClock()
        button, presses = make_button([True, False, True, False, True], clock, debounce_ms=50)
        await button.poll_once()
        for _ in range(2):
            clock.advance_ms(5)
            await button.poll_once()
            clock.advance_ms(5)
            await button.poll_once()
        assert len(presses) == 1

    async def test_presses_after_debounce_all_count(self):
        clock = FakeClock()
        button, presses = make_button([True, False, True, False, True], clock, debounce_ms=50)
        for _ in range(5):
            await button.poll_once()
            clock.advance_ms(60)
        assert len(presses) == 3

    async def test_unknown_reading_ignored(self):
        clock = FakeClock()
        button, presses = make_button([None, True, None, True], clock)
        for _ in range(4):
            await button.poll_once()
        assert len(presses) == 1

    async def test_failing_callback_does_not_stop_others(self):
        clock = FakeClock()
        button, presses = make_button([True], clock)

        async def _broken():
            raise RuntimeError("display gone")

        button._callbacks.insert(0, _broken)
        assert await button.poll_once() is True
        assert len(presses) == 1

    async def test_poller_loop_triggers(self):
        pressed = asyncio.Event()
        state = {"value": False}

        async def _provider():
            return state["value"]

        button = SideButton(pressed_provider=_provider, debounce_ms=0, poll_interval_ms=1)

        async def _on_press():
            pressed.set()

        button.register_callback(_on_press)
        await button.start()
        state["value"] = True
        await asyncio.wait_for(pressed.wait(), timeout=1.0)
        await button.stop()


class TestSysfsProvider:
    async def test_active_low(self, tmp_path):
        path = tmp_path / "value"
        path.write_text("0\n")
        provider = sysfs_gpio_provider(path, active_low=True)
        assert await provider() is True
        path.write_text("1\n")
        assert await provider() is False

    async def test_active_high(self, tmp_path):
        path = tmp_path / "value"
        path.write_text("1")
        assert await sysfs_gpio_provider(path, active_low=False)() is True

    async def test_missing_file_is_unknown(self, tmp_path):
        assert await sysfs_gpio_provider(tmp_path / "absent")() is None
