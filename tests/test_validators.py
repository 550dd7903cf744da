"""Tests for the validator snapshot registry."""

from decimal import Decimal

import pytest

from ksmbot.errors import AmbiguousIdentity, IdentityNotFound, StorageFailure

from .factories import make_snapshot


async def test_bulk_upsert_latest_values_win(registry, db_manager):
    first = make_snapshot("S1", display="Alice")
    second = make_snapshot("S1", display="Alice", controllerId="C2", active=False)

    await registry.bulk_upsert([first, second])
    await registry.bulk_upsert([first, second])

    found = await registry.find_by_stash("S1")
    assert len(found) == 1
    assert found[0].controller_id == "C2"
    assert found[0].active is False

    stats = await db_manager.get_statistics()
    assert stats["validator_snapshots"] == 1


async def test_bulk_upsert_overwrites_every_mutable_field(registry):
    await registry.bulk_upsert([make_snapshot("S1", display="Alice")])

    replacement = make_snapshot(
        "S1",
        display="Alicia",
        parent="Wonderland",
        controllerId="C9",
        exposure={"total": "10", "own": "10", "others": []},
        validatorPrefs={"commission": "1", "blocked": True},
        active=False,
    )
    assert await registry.bulk_upsert([replacement]) == 1

    (snapshot,) = await registry.find_by_stash("S1")
    assert snapshot.model_dump() == replacement.model_dump()


async def test_snapshot_round_trips_exact_decimals(registry):
    snapshot = make_snapshot(
        "S1",
        exposure={
            "total": "18446744073709551616000",
            "own": "0.000000000001",
            "others": [{"who": "N1", "value": "18446744073709551615999.999999999999"}],
        },
    )
    await registry.bulk_upsert([snapshot])

    (stored,) = await registry.find_by_stash("S1")
    assert stored.exposure.total == Decimal("18446744073709551616000")
    assert stored.exposure.own == Decimal("0.000000000001")
    assert stored.exposure.others[0].value == Decimal(
        "18446744073709551615999.999999999999"
    )
    assert stored.preferences.commission == Decimal("0.05")


async def test_find_by_stash_unknown(registry):
    assert await registry.find_by_stash("missing") == []


async def test_find_by_identity_display_multiplicity(registry):
    await registry.bulk_upsert(
        [
            make_snapshot("S1", display="Alice"),
            make_snapshot("S2", display="Bob"),
            make_snapshot("S3", display="Bob"),
        ]
    )

    assert await registry.find_by_identity_display("Nobody") == []
    assert [v.stash_id for v in await registry.find_by_identity_display("Alice")] == [
        "S1"
    ]
    assert [v.stash_id for v in await registry.find_by_identity_display("Bob")] == [
        "S2",
        "S3",
    ]


async def test_find_by_identity_display_and_parent(registry):
    await registry.bulk_upsert(
        [
            make_snapshot("S1", display="01", parent="Validators"),
            make_snapshot("S2", display="02", parent="Validators"),
            make_snapshot("S3", display="01", parent="Stakers"),
        ]
    )

    found = await registry.find_by_identity_display_and_parent("Validators", "01")
    assert [v.stash_id for v in found] == ["S1"]
    assert await registry.find_by_identity_display_and_parent("Nobody", "01") == []
    # Plain display lookup ignores the parent
    assert len(await registry.find_by_identity_display("01")) == 2


async def test_resolve_identity(registry):
    await registry.bulk_upsert(
        [
            make_snapshot("S1", display="Alice"),
            make_snapshot("S2", display="Bob"),
            make_snapshot("S3", display="Bob"),
            make_snapshot("S4", display="Bob", parent="Team"),
        ]
    )

    assert (await registry.resolve_identity("Alice")).stash_id == "S1"
    assert (await registry.resolve_identity("Team/Bob")).stash_id == "S4"

    with pytest.raises(IdentityNotFound):
        await registry.resolve_identity("Carol")

    with pytest.raises(AmbiguousIdentity) as excinfo:
        await registry.resolve_identity("Bob")
    assert excinfo.value.stash_ids == ["S2", "S3", "S4"]


async def test_bulk_upsert_is_fail_fast(registry, monkeypatch):
    real_upsert = registry._upsert_one
    attempted = []

    async def flaky_upsert(snapshot):
        attempted.append(snapshot.stash_id)
        if snapshot.stash_id == "S2":
            raise StorageFailure("connection lost")
        await real_upsert(snapshot)

    monkeypatch.setattr(registry, "_upsert_one", flaky_upsert)

    with pytest.raises(StorageFailure):
        await registry.bulk_upsert(
            [make_snapshot("S1"), make_snapshot("S2"), make_snapshot("S3")]
        )

    assert attempted == ["S1", "S2"]
    assert len(await registry.find_by_stash("S1")) == 1
    assert await registry.find_by_stash("S3") == []


async def test_storage_errors_surface_as_storage_failure(registry, db_manager):
    await db_manager.drop_tables()

    with pytest.raises(StorageFailure):
        await registry.find_by_stash("S1")


def test_snapshot_accepts_crawler_field_names():
    snapshot = make_snapshot("  S1  ", display="Alice", parent="Org", controllerId="C1")

    assert snapshot.stash_id == "S1"
    assert snapshot.controller_id == "C1"
    assert snapshot.identity.display_parent == "Org"
    assert snapshot.preferences.commission == Decimal("0.05")
