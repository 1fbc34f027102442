"""Test RoomBus membership, publish and failure isolation."""

import asyncio

from disaster_relay.bus.rooms import RoomBus

from conftest import RecordingSubscriber


class SlowSubscriber(RecordingSubscriber):
    async def send(self, topic, payload):
        await asyncio.sleep(10)


class TestMembership:
    def test_join_and_leave(self, bus):
        alice = RecordingSubscriber("alice")
        bus.join(alice, "disaster_1")

        assert bus.members("disaster_1") == {"alice"}
        assert bus.rooms_of(alice) == {"disaster_1"}

        bus.leave(alice, "disaster_1")
        assert bus.members("disaster_1") == set()
        assert bus.active_rooms == 0

    def test_empty_room_torn_down(self, bus):
        a, b = RecordingSubscriber("a"), RecordingSubscriber("b")
        bus.join(a, "r")
        bus.join(b, "r")
        bus.leave(a, "r")
        assert bus.active_rooms == 1
        bus.leave(b, "r")
        assert bus.active_rooms == 0

    def test_disconnect_leaves_every_room(self, bus):
        sub = RecordingSubscriber("s")
        bus.connect(sub)
        bus.join(sub, "r1")
        bus.join(sub, "r2")

        bus.disconnect(sub)

        assert bus.active_rooms == 0
        assert bus.connected == 0
        assert bus.rooms_of(sub) == set()

    def test_leave_unknown_room_is_noop(self, bus):
        bus.leave(RecordingSubscriber("s"), "nowhere")
        assert bus.active_rooms == 0


class TestPublish:
    async def test_only_room_members_receive(self, bus):
        inside, outside = RecordingSubscriber("in"), RecordingSubscriber("out")
        bus.join(inside, "disaster_1")
        bus.join(outside, "disaster_2")

        delivered = await bus.publish("disaster_1", "report_created", {"report_id": "r1"})

        assert delivered == 1
        assert inside.received == [("report_created", {"report_id": "r1"})]
        assert outside.received == []

    async def test_publish_to_empty_room_is_noop(self, bus):
        assert await bus.publish("disaster_404", "report_created", {}) == 0
        assert bus.messages_delivered == 0

    async def test_publish_to_disaster_uses_room_name(self, bus):
        sub = RecordingSubscriber("s")
        bus.join(sub, "disaster_abc")
        await bus.publish_to_disaster("abc", "resources_updated", {"count": 3})
        assert sub.received == [("resources_updated", {"count": 3})]

    async def test_after_leave_no_delivery(self, bus):
        sub = RecordingSubscriber("s")
        bus.join(sub, "r")
        bus.leave(sub, "r")
        await bus.publish("r", "t", {})
        assert sub.received == []

    async def test_topic_filtered_membership(self, bus):
        sub = RecordingSubscriber("s")
        bus.join(sub, "r", topics=["resources_updated"])
        await bus.publish("r", "social_media_updated", {})
        await bus.publish("r", "resources_updated", {"n": 1})
        assert sub.received == [("resources_updated", {"n": 1})]

    async def test_broadcast_reaches_all_connected(self, bus):
        a, b = RecordingSubscriber("a"), RecordingSubscriber("b")
        bus.connect(a)
        bus.connect(b)
        bus.join(b, "disaster_1")

        assert await bus.broadcast("disaster_deleted", {"id": "1"}) == 2
        assert a.received == b.received == [("disaster_deleted", {"id": "1"})]


class TestFailureIsolation:
    async def test_failing_subscriber_does_not_block_others(self, bus):
        good, bad = RecordingSubscriber("good"), RecordingSubscriber("bad", fail=True)
        bus.join(bad, "r")
        bus.join(good, "r")

        delivered = await bus.publish("r", "report_created", {"x": 1})

        assert delivered == 1
        assert good.received == [("report_created", {"x": 1})]
        assert bus.get_error_counts() == {"report_created": 1}
        assert bus.failures[0].subscriber_id == "bad"

    async def test_slow_subscriber_times_out(self):
        bus = RoomBus(send_timeout=0.01)
        fast, slow = RecordingSubscriber("fast"), SlowSubscriber("slow")
        bus.join(fast, "r")
        bus.join(slow, "r")

        assert await bus.publish("r", "t", {}) == 1
        assert fast.received == [("t", {})]
        assert bus.get_error_counts() == {"t": 1}

    async def test_failure_log_bounded(self):
        bus = RoomBus(max_failures=2)
        bus.join(RecordingSubscriber("bad", fail=True), "r")
        for _ in range(5):
            await bus.publish("r", "t", {})
        assert len(bus.failures) == 2
        assert bus.get_error_counts() == {"t": 5}
