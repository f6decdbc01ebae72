import pytest

from app.services.access import AccessResolver, Inclusion, is_eligible


@pytest.mark.parametrize(
    "pref, include_in_memory, expected",
    [
        (None, True, True),
        (None, False, False),
        (True, True, True),
        (True, False, True),
        (False, True, False),
        (False, False, False),
    ],
)
def test_preference_precedence(pref, include_in_memory, expected):
    assert is_eligible(Inclusion.from_pref(pref), include_in_memory) is expected


def test_from_pref():
    assert Inclusion.from_pref(None) is Inclusion.UNSET
    assert Inclusion.from_pref(True) is Inclusion.INCLUDED
    assert Inclusion.from_pref(False) is Inclusion.EXCLUDED


async def test_own_lectures_are_visible_and_eligible(store):
    clazz = await store.create_class("alice", "Physics")
    lec = await store.create_lecture(clazz.id, "alice")

    scope = await AccessResolver(store).resolve("alice", clazz.id)

    assert scope.visible == {lec.id}
    assert scope.eligible == {lec.id}


async def test_shared_lecture_via_sync_key(store):
    # Viewer has two classes, one of them synced under "phys101".
    mine = await store.create_class("viewer", "Physics", sync_key="phys101", sync_enabled=True)
    await store.create_class("viewer", "Chemistry")
    other = await store.create_class("owner", "Physics (other section)")
    shared = await store.create_lecture(
        other.id, "owner", sync_key="phys101", include_in_memory=True
    )

    scope = await AccessResolver(store).resolve("viewer", mine.id)

    assert shared.id in scope.visible
    assert shared.id in scope.eligible


async def test_unshared_foreign_lecture_is_invisible(store):
    mine = await store.create_class("viewer", "Physics", sync_key="phys101", sync_enabled=True)
    other = await store.create_class("owner", "History")
    await store.create_lecture(other.id, "owner", sync_key="hist200")
    await store.create_lecture(other.id, "owner", sync_key=None)

    scope = await AccessResolver(store).resolve("viewer", mine.id)

    assert scope.visible == set()
    assert scope.eligible == set()
    assert not scope.excluded_by_preference


async def test_viewer_without_sync_keys_does_not_match_null_keys(store):
    mine = await store.create_class("viewer", "Physics")
    other = await store.create_class("owner", "Physics")
    await store.create_lecture(other.id, "owner")

    scope = await AccessResolver(store).resolve("viewer", mine.id)
    assert scope.visible == set()


async def test_explicit_opt_out_beats_legacy_default(store):
    clazz = await store.create_class("alice", "Physics")
    lec = await store.create_lecture(clazz.id, "alice", include_in_memory=True)
    await store.upsert_pref(lec.id, "alice", False)

    scope = await AccessResolver(store).resolve("alice", clazz.id)

    assert scope.visible == {lec.id}
    assert scope.eligible == set()
    assert scope.excluded_by_preference


async def test_legacy_exclusion_without_pref(store):
    clazz = await store.create_class("alice", "Physics")
    await store.create_lecture(clazz.id, "alice", include_in_memory=False)

    scope = await AccessResolver(store).resolve("alice", clazz.id)
    assert scope.eligible == set()


async def test_explicit_opt_in_beats_legacy_exclusion(store):
    clazz = await store.create_class("alice", "Physics")
    lec = await store.create_lecture(clazz.id, "alice", include_in_memory=False)
    await store.upsert_pref(lec.id, "alice", True)

    scope = await AccessResolver(store).resolve("alice", clazz.id)
    assert scope.eligible == {lec.id}


async def test_prefs_are_per_viewer(store):
    a = await store.create_class("alice", "Physics", sync_key="k", sync_enabled=True)
    b = await store.create_class("bob", "Physics", sync_key="k", sync_enabled=True)
    lec = await store.create_lecture(a.id, "alice", sync_key="k")
    await store.upsert_pref(lec.id, "bob", False)

    resolver = AccessResolver(store)
    assert (await resolver.resolve("alice", a.id)).eligible == {lec.id}
    assert (await resolver.resolve("bob", b.id)).eligible == set()


async def test_upsert_pref_replaces_previous_value(store):
    clazz = await store.create_class("alice", "Physics")
    lec = await store.create_lecture(clazz.id, "alice")

    await store.upsert_pref(lec.id, "alice", False)
    await store.upsert_pref(lec.id, "alice", True)

    assert await store.get_pref(lec.id, "alice") is True
    assert await store.get_prefs("alice", [lec.id]) == {lec.id: True}


async def test_can_access(store):
    mine = await store.create_class("viewer", "Physics", sync_key="phys101", sync_enabled=True)
    other = await store.create_class("owner", "Physics")
    own_lec = await store.create_lecture(mine.id, "viewer")
    shared = await store.create_lecture(other.id, "owner", sync_key="phys101")
    private = await store.create_lecture(other.id, "owner")

    resolver = AccessResolver(store)
    assert await resolver.can_access("viewer", own_lec.id)
    assert await resolver.can_access("viewer", shared.id)
    assert not await resolver.can_access("viewer", private.id)
    assert not await resolver.can_access("viewer", "missing")
