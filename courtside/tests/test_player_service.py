"""
Tests for player, group and membership management.
"""
import pytest
from sqlalchemy import select

from courtside.database.models import GroupMembership, GroupRole
from courtside.exceptions import AuthorizationDenied, Conflict, NotFound, ValidationError
from courtside.services import group_service, player_service
from courtside.services.authorization import AuthenticatedUser
from courtside.services.membership_store import SqlMembershipStore


def as_user(player):
    return AuthenticatedUser.from_player(player)


# Membership store
@pytest.mark.asyncio
async def test_membership_store_round_trip(db_session, league):
    store = SqlMembershipStore(db_session)
    group_id = league["group"].id
    dan = league["d"]

    assert await store.get_membership(dan.id, group_id) == GroupRole.VIEWER
    await store.set_membership(dan.id, group_id, GroupRole.GROUP_ADMIN)
    await db_session.commit()
    assert await store.get_membership(dan.id, group_id) == GroupRole.GROUP_ADMIN

    await store.set_membership(dan.id, group_id, None)
    await db_session.commit()
    assert await store.get_membership(dan.id, group_id) is None
    assert await store.list_memberships(dan.id) == {}


@pytest.mark.asyncio
async def test_group_admin_requires_email(db_session, league):
    admin = as_user(league["admin"])
    created = await player_service.create_player(db_session, admin, name="No Mail")

    with pytest.raises(ValidationError, match="email"):
        await group_service.set_member_role(
            db_session, admin, league["group"].id, created["id"], GroupRole.GROUP_ADMIN
        )


@pytest.mark.asyncio
async def test_set_membership_unknown_ids(db_session, league):
    store = SqlMembershipStore(db_session)
    with pytest.raises(NotFound):
        await store.set_membership(9999, league["group"].id, GroupRole.VIEWER)
    with pytest.raises(NotFound):
        await store.set_membership(league["a"].id, 9999, GroupRole.VIEWER)


# Groups
@pytest.mark.asyncio
async def test_only_admin_creates_groups(db_session, league):
    with pytest.raises(AuthorizationDenied):
        await group_service.create_group(db_session, as_user(league["group_admin"]), "Rogue")

    created = await group_service.create_group(db_session, as_user(league["admin"]), "Sunday Singles")
    assert created["name"] == "Sunday Singles"

    with pytest.raises(Conflict):
        await group_service.create_group(db_session, as_user(league["admin"]), "sunday singles")


@pytest.mark.asyncio
async def test_list_groups_reports_role_and_member_count(db_session, league):
    groups = await group_service.list_groups(db_session, as_user(league["viewer"]))
    by_name = {g["name"]: g for g in groups}

    assert by_name["Tuesday Doubles"]["my_role"] == "VIEWER"
    assert by_name["Tuesday Doubles"]["member_count"] == 6
    assert by_name["Weekend Club"]["my_role"] is None


@pytest.mark.asyncio
async def test_viewer_cannot_manage_members(db_session, league):
    with pytest.raises(AuthorizationDenied):
        await group_service.set_member_role(
            db_session, as_user(league["viewer"]), league["group"].id, league["a"].id, None
        )


@pytest.mark.asyncio
async def test_group_admin_adds_and_removes_members(db_session, league):
    gina = as_user(league["group_admin"])
    group_id = league["group"].id
    olga = league["outsider"]

    await group_service.set_member_role(db_session, gina, group_id, olga.id, GroupRole.VIEWER)
    result = await db_session.execute(
        select(GroupMembership.role).where(
            GroupMembership.group_id == group_id, GroupMembership.player_id == olga.id
        )
    )
    assert result.scalar_one() == "VIEWER"

    await group_service.set_member_role(db_session, gina, group_id, olga.id, None)
    assert await SqlMembershipStore(db_session).get_membership(olga.id, group_id) is None


# Players
@pytest.mark.asyncio
async def test_group_admin_creates_player_into_own_group_only(db_session, league):
    gina = as_user(league["group_admin"])

    created = await player_service.create_player(
        db_session, gina, name="Newbie", email="Newbie@Example.com", group_id=league["group"].id
    )
    assert created["email"] == "newbie@example.com"
    assert created["memberships"] == {league["group"].id: "VIEWER"}

    with pytest.raises(AuthorizationDenied):
        await player_service.create_player(
            db_session, gina, name="Elsewhere", group_id=league["other_group"].id
        )
    with pytest.raises(AuthorizationDenied):
        await player_service.create_player(db_session, gina, name="Nowhere")


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(db_session, league):
    with pytest.raises(ValidationError, match="already used"):
        await player_service.create_player(
            db_session, as_user(league["admin"]), name="Copy", email="ALICE@example.com"
        )


@pytest.mark.asyncio
async def test_player_updates_own_profile_but_not_email(db_session, league):
    alice = league["a"]
    me = as_user(alice)

    updated = await player_service.update_player(
        db_session, me, alice.id, {"name": "Alice B.", "contact_number": "555-0100"}
    )
    assert updated["name"] == "Alice B."
    assert updated["contact_number"] == "555-0100"

    with pytest.raises(AuthorizationDenied):
        await player_service.update_player(db_session, me, alice.id, {"email": "new@example.com"})
    with pytest.raises(AuthorizationDenied):
        await player_service.update_player(db_session, me, league["b"].id, {"name": "Hacked"})


@pytest.mark.asyncio
async def test_admin_changes_email(db_session, league):
    admin = as_user(league["admin"])
    updated = await player_service.update_player(
        db_session, admin, league["b"].id, {"email": "Robert@Example.com"}
    )
    assert updated["email"] == "robert@example.com"

    with pytest.raises(ValidationError):
        await player_service.update_player(
            db_session, admin, league["group_admin"].id, {"email": None}
        )


@pytest.mark.asyncio
async def test_complete_profile_claims_existing_player_by_email(db_session, league):
    login = AuthenticatedUser(id=None, email="Carol@Example.com")
    claimed = await player_service.complete_profile(db_session, login, name="Carol C.")

    assert claimed["id"] == league["c"].id
    assert claimed["name"] == "Carol C."


@pytest.mark.asyncio
async def test_complete_profile_creates_player_for_new_login(db_session, league):
    login = AuthenticatedUser(id=None, email="fresh@example.com")
    created = await player_service.complete_profile(db_session, login, name="Fresh")

    assert created["email"] == "fresh@example.com"
    assert created["memberships"] == {}
    assert created["rating"] == 1200.0

    found = await player_service.get_player_by_email(db_session, "FRESH@example.com")
    assert found["id"] == created["id"]


@pytest.mark.asyncio
async def test_list_players_is_scoped_to_group(db_session, league):
    viewer = as_user(league["viewer"])
    in_group = await player_service.list_players(db_session, viewer, league["group"].id)
    everyone = await player_service.list_players(db_session, viewer, None)

    assert {p["name"] for p in in_group} == {"Gina", "Vic", "Alice", "Bob", "Carol", "Dan"}
    assert len(everyone) == 8

    with pytest.raises(AuthorizationDenied):
        await player_service.list_players(db_session, viewer, league["other_group"].id)


@pytest.mark.asyncio
async def test_only_admin_deletes_players(db_session, league):
    with pytest.raises(AuthorizationDenied):
        await player_service.delete_player(db_session, as_user(league["group_admin"]), league["a"].id)

    assert await player_service.delete_player(db_session, as_user(league["admin"]), league["a"].id)
    with pytest.raises(NotFound):
        await player_service.get_player(db_session, league["a"].id)
