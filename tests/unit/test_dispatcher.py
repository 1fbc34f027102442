"""Test debounced client-side dispatch and room selection."""

import asyncio

from disaster_relay.bus.dispatcher import EventDispatcher, RoomSelector


class TestEventDispatcher:
    def test_burst_coalesces_to_last_payload(self, scheduler):
        dispatcher = EventDispatcher(scheduler, debounce_ms=300)
        calls = []
        dispatcher.on("resources_updated", calls.append)

        for i in range(5):
            dispatcher.dispatch("resources_updated", {"n": i})
            scheduler.advance(0.05)

        assert calls == []
        scheduler.advance(0.3)
        assert calls == [{"n": 4}]

    def test_each_handler_runs_once(self, scheduler):
        dispatcher = EventDispatcher(scheduler)
        a, b = [], []
        dispatcher.on("t", a.append)
        dispatcher.on("t", b.append)

        dispatcher.dispatch("t", 1)
        dispatcher.dispatch("t", 2)
        scheduler.advance(1)

        assert a == [2]
        assert b == [2]
        assert dispatcher.invocations == 2

    def test_topics_debounce_independently(self, scheduler):
        dispatcher = EventDispatcher(scheduler, debounce_ms=300)
        seen = []
        dispatcher.on("a", lambda p: seen.append(("a", p)))
        dispatcher.on("b", lambda p: seen.append(("b", p)))

        dispatcher.dispatch("a", 1)
        scheduler.advance(0.2)
        dispatcher.dispatch("b", 1)
        scheduler.advance(0.1)
        assert seen == [("a", 1)]
        scheduler.advance(0.2)
        assert seen == [("a", 1), ("b", 1)]

    def test_raising_handler_does_not_stop_others(self, scheduler, caplog):
        dispatcher = EventDispatcher(scheduler)
        seen = []

        def broken(payload):
            raise RuntimeError("handler bug")

        dispatcher.on("t", broken)
        dispatcher.on("t", seen.append)
        dispatcher.dispatch("t", "payload")

        with caplog.at_level("ERROR"):
            scheduler.advance(1)

        assert seen == ["payload"]
        assert dispatcher.get_error_counts() == {"t": 1}
        assert any(r.exc_info for r in caplog.records)

    def test_off_removes_handler(self, scheduler):
        dispatcher = EventDispatcher(scheduler)
        seen = []
        dispatcher.on("t", seen.append)
        dispatcher.off("t", seen.append)
        dispatcher.off("t", seen.append)

        dispatcher.dispatch("t", 1)
        scheduler.advance(1)

        assert seen == []
        assert dispatcher.handler_count("t") == 0

    def test_no_handlers_drops_payload(self, scheduler):
        dispatcher = EventDispatcher(scheduler)
        dispatcher.dispatch("t", 1)
        scheduler.advance(1)
        assert dispatcher.pending_topics == []

    def test_flush_delivers_immediately(self, scheduler):
        dispatcher = EventDispatcher(scheduler)
        seen = []
        dispatcher.on("t", seen.append)
        dispatcher.dispatch("t", "now")

        dispatcher.flush()
        assert seen == ["now"]
        scheduler.advance(1)
        assert seen == ["now"]

    def test_close_cancels_pending(self, scheduler):
        dispatcher = EventDispatcher(scheduler)
        seen = []
        dispatcher.on("t", seen.append)
        dispatcher.dispatch("t", 1)

        dispatcher.close()
        scheduler.advance(1)
        assert seen == []
        assert scheduler.pending == 0

    async def test_async_handler_is_scheduled(self, scheduler):
        dispatcher = EventDispatcher(scheduler)
        done = asyncio.Event()
        seen = []

        async def handler(payload):
            seen.append(payload)
            done.set()

        dispatcher.on("t", handler)
        dispatcher.dispatch("t", "x")
        scheduler.advance(1)

        await asyncio.wait_for(done.wait(), timeout=1.0)
        assert seen == ["x"]

    async def test_failing_async_handler_is_counted(self, scheduler, caplog):
        dispatcher = EventDispatcher(scheduler)
        seen = []

        async def broken(payload):
            raise RuntimeError("async handler bug")

        dispatcher.on("t", broken)
        dispatcher.on("t", seen.append)
        dispatcher.dispatch("t", "x")

        with caplog.at_level("ERROR"):
            scheduler.advance(1)
            for _ in range(10):
                if dispatcher.get_error_counts():
                    break
                await asyncio.sleep(0)

        assert seen == ["x"]
        assert dispatcher.get_error_counts() == {"t": 1}
        assert any("Async handler failed" in r.getMessage() for r in caplog.records)


class TestRoomSelector:
    def _selector(self, scheduler):
        log = []
        selector = RoomSelector(
            join=lambda d: log.append(("join", d)),
            leave=lambda d: log.append(("leave", d)),
            scheduler=scheduler,
            debounce_ms=300,
        )
        return selector, log

    def test_rapid_selection_applies_last(self, scheduler):
        selector, log = self._selector(scheduler)
        for d in ("a", "b", "c"):
            selector.select(d)
            scheduler.advance(0.1)
        scheduler.advance(0.3)

        assert log == [("join", "c")]
        assert selector.current == "c"

    def test_switch_leaves_previous(self, scheduler):
        selector, log = self._selector(scheduler)
        selector.select("a")
        scheduler.advance(1)
        selector.select("b")
        scheduler.advance(1)

        assert log == [("join", "a"), ("leave", "a"), ("join", "b")]

    def test_burst_ending_on_current_room_is_silent(self, scheduler):
        selector, log = self._selector(scheduler)
        selector.select("a")
        scheduler.advance(1)
        log.clear()

        selector.select("b")
        selector.select("a")
        scheduler.advance(1)
        assert log == []

    def test_select_none_leaves(self, scheduler):
        selector, log = self._selector(scheduler)
        selector.select("a")
        scheduler.advance(1)
        selector.select(None)
        scheduler.advance(1)

        assert log[-1] == ("leave", "a")
        assert selector.current is None

    def test_close_cancels(self, scheduler):
        selector, log = self._selector(scheduler)
        selector.select("a")
        selector.close()
        scheduler.advance(1)
        assert log == []
