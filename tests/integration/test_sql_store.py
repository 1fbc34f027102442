"""SqlStore against SQLite (aiosqlite)."""

import pytest
from sqlalchemy import update

from disaster_relay.audit.trail import append, creation_entry, deletion_entry, diff
from disaster_relay.core.enums import ResourceType, VerificationStatus
from disaster_relay.core.errors import AuditCorruptedError, NotFoundError
from disaster_relay.core.models import Coordinates, Disaster, Report, Resource
from disaster_relay.storage.sql.connection import session_factory, session_scope
from disaster_relay.storage.sql.models import DisasterRecord
from disaster_relay.storage.sql.repos import SqlStore

MIAMI = Coordinates(lat=25.7617, lng=-80.1918)


@pytest.fixture
async def sql_store(tmp_path):
    store = SqlStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}")
    await store.init()
    yield store
    await store.close()


def _disaster(sim_clock, n, **kw):
    sim_clock.advance(1)
    d = Disaster(
        id=f"d{n}",
        title=f"Disaster {n}",
        description="desc",
        location_name="Miami, FL",
        location=MIAMI,
        owner_id=kw.pop("owner_id", "u1"),
        created_at=sim_clock.now(),
        **kw,
    )
    return append(d, creation_entry(d.owner_id, clock=sim_clock))


class TestSqlDisasters:
    async def test_roundtrip_preserves_trail_and_timezone(self, sql_store, sim_clock):
        d = _disaster(sim_clock, 1, tags=["flood", "urgent"])
        await sql_store.insert_disaster(d)

        loaded = await sql_store.get_disaster("d1")

        assert loaded == d
        assert loaded.created_at.tzinfo is not None
        assert await sql_store.get_disaster("missing") is None

    async def test_update_appends_and_replaces_tags(self, sql_store, sim_clock):
        d = _disaster(sim_clock, 1, tags=["flood"])
        await sql_store.insert_disaster(d)
        changed = d.model_copy(update={"title": "Worse", "tags": ["fire"]})
        updated = append(changed, diff(d, changed, "u1", clock=sim_clock))

        await sql_store.update_disaster(updated)

        loaded = await sql_store.get_disaster("d1")
        assert loaded.title == "Worse"
        assert len(loaded.audit_trail) == 2
        assert loaded.audit_trail[1].changes["tags"].from_ == ["flood"]
        assert [x.id for x in (await sql_store.list_disasters(tag="fire")).items] == ["d1"]
        assert (await sql_store.list_disasters(tag="flood")).total == 0

    async def test_update_missing(self, sql_store, sim_clock):
        with pytest.raises(NotFoundError):
            await sql_store.update_disaster(_disaster(sim_clock, 9))

    async def test_update_rejects_rewritten_trail(self, sql_store, sim_clock):
        d = _disaster(sim_clock, 1)
        await sql_store.insert_disaster(d)
        with pytest.raises(AuditCorruptedError):
            await sql_store.update_disaster(d.model_copy(update={"audit_trail": ()}))
        assert len((await sql_store.get_disaster("d1")).audit_trail) == 1

    async def test_corrupted_stored_trail_is_fatal(self, sql_store, sim_clock):
        await sql_store.insert_disaster(_disaster(sim_clock, 1))
        async with session_scope(session_factory(sql_store.engine)) as session:
            await session.execute(
                update(DisasterRecord).where(DisasterRecord.id == "d1").values(audit_trail={"bad": 1})
            )

        with pytest.raises(AuditCorruptedError):
            await sql_store.get_disaster("d1")

    async def test_list_filters_and_pagination(self, sql_store, sim_clock):
        await sql_store.insert_disaster(_disaster(sim_clock, 1, tags=["flood"]))
        await sql_store.insert_disaster(_disaster(sim_clock, 2, tags=["flood"], owner_id="u2"))
        d3 = _disaster(sim_clock, 3, tags=["fire"])
        await sql_store.insert_disaster(d3)
        await sql_store.update_disaster(append(d3, deletion_entry("u1", clock=sim_clock)))

        page = await sql_store.list_disasters(limit=1)
        assert [d.id for d in page.items] == ["d2"]
        assert page.total == 2
        assert page.has_more

        assert (await sql_store.list_disasters(include_deleted=True)).total == 3
        assert [d.id for d in (await sql_store.list_disasters(owner_id="u1")).items] == ["d1"]
        assert (await sql_store.list_disasters(tag="flood", offset=1)).items[0].id == "d1"

    async def test_ping(self, sql_store):
        assert await sql_store.ping() is True


class TestSqlReports:
    async def test_insert_status_and_list(self, sql_store, sim_clock):
        await sql_store.insert_disaster(_disaster(sim_clock, 1))
        r1 = Report(disaster_id="d1", user_id="a", content="one", created_at=sim_clock.now())
        sim_clock.advance(1)
        r2 = Report(
            disaster_id="d1",
            user_id="b",
            content="two",
            image_url="https://img.example.com/x.jpg",
            created_at=sim_clock.now(),
        )
        await sql_store.insert_report(r1)
        await sql_store.insert_report(r2)

        assert await sql_store.get_report(r1.id) == r1
        updated = await sql_store.set_verification_status(r2.id, VerificationStatus.REJECTED)
        assert updated.verification_status == VerificationStatus.REJECTED
        assert await sql_store.set_verification_status("nope", VerificationStatus.VERIFIED) is None

        page = await sql_store.list_reports(disaster_id="d1")
        assert [r.content for r in page.items] == ["two", "one"]
        rejected = await sql_store.list_reports(verification_status=VerificationStatus.REJECTED)
        assert [r.id for r in rejected.items] == [r2.id]


class TestSqlResources:
    async def test_nearest(self, sql_store):
        places = {
            "downtown": MIAMI,
            "lauderdale": Coordinates(lat=26.1224, lng=-80.1373),
            "orlando": Coordinates(lat=28.5383, lng=-81.3792),
        }
        for name, loc in places.items():
            await sql_store.add_resource(
                Resource(
                    disaster_id="d1",
                    name=name,
                    location_name=name,
                    location=loc,
                    type=ResourceType.SHELTER,
                    capacity=100,
                )
            )

        hits = await sql_store.nearest_resources(MIAMI, radius_km=50)

        assert [r.name for r in hits] == ["downtown", "lauderdale"]
        assert hits[0].distance_km == 0.0
        assert hits[0].type == ResourceType.SHELTER
        assert hits[0].capacity == 100
        assert len(await sql_store.nearest_resources(MIAMI, radius_km=500, limit=2)) == 2

    async def test_nearest_across_antimeridian(self, sql_store, store):
        fiji_east = Coordinates(lat=-17.0, lng=-179.95)
        resource = Resource(
            disaster_id="d1",
            name="east",
            location_name="Lau Islands",
            location=fiji_east,
            type=ResourceType.SHELTER,
        )
        await sql_store.add_resource(resource)
        await store.add_resource(resource)
        center = Coordinates(lat=-17.0, lng=179.95)

        sql_hits = await sql_store.nearest_resources(center, radius_km=50)
        memory_hits = await store.nearest_resources(center, radius_km=50)

        assert [r.name for r in sql_hits] == ["east"]
        assert sql_hits[0].distance_km == memory_hits[0].distance_km
        assert sql_hits[0].distance_km < 15

    async def test_nearest_near_pole_skips_longitude_filter(self, sql_store):
        await sql_store.add_resource(
            Resource(
                disaster_id="d1",
                name="station",
                location_name="Alert",
                location=Coordinates(lat=89.9, lng=100.0),
                type=ResourceType.SHELTER,
            )
        )

        hits = await sql_store.nearest_resources(Coordinates(lat=89.95, lng=-80.0), radius_km=50)

        assert [r.name for r in hits] == ["station"]
