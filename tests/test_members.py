"""Managed membership on private channels, plus the end-to-end 'ops' scenario."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlmodel import select

from teamchat.api.v1.realtime import get_gateway
from teamchat.main import app
from teamchat.models.channel import Channel, ChannelType
from teamchat.models.membership import MemberRole, Membership
from teamchat.models.user import UserRole
from teamchat.services import membership
from teamchat.services.gateway import ChatGateway, Connection, room_key


def _base(ctx: dict) -> str:
    return f"/v1/tenants/{ctx['tenant'].id}/chat"


async def _private_channel(client: AsyncClient, ctx: dict, name: str = "ops") -> dict:
    resp = await client.post(f"{_base(ctx)}/channels", json={
        "name": name,
        "type": "PRIVATE",
    }, headers=ctx["headers"]["alice"])
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_ops_scenario(client: AsyncClient, team, test_session_factory, drain):
    """Private channel: join refused, admin adds member, member's message is broadcast and paged."""
    gateway = ChatGateway(test_session_factory)
    app.dependency_overrides[get_gateway] = lambda: gateway

    alice, bob = team["users"]["alice"], team["users"]["bob"]
    ops = await _private_channel(client, team)
    base = f"{_base(team)}/channels/{ops['id']}"

    watcher = Connection(tenant_id=team["tenant"].id, user_id=alice.id)
    gateway.rooms.join(room_key(ops["id"]), watcher)

    resp = await client.post(f"{base}/join", headers=team["headers"]["bob"])
    assert resp.status_code == 403

    resp = await client.post(f"{base}/members", json={"user_ids": [str(bob.id)]}, headers=team["headers"]["alice"])
    assert resp.status_code == 200
    added = {m["user_id"]: m["role"] for m in resp.json()}
    assert added == {str(bob.id): "MEMBER"}

    resp = await client.post(f"{base}/messages", json={"content": "hi"}, headers=team["headers"]["bob"])
    assert resp.status_code == 201
    sent = resp.json()

    frames = drain(watcher)
    assert [f["event"] for f in frames] == ["newMessage"]
    assert frames[0]["data"]["id"] == sent["id"]
    assert frames[0]["data"]["content"] == "hi"

    resp = await client.get(f"{base}/messages", params={"limit": 50}, headers=team["headers"]["alice"])
    assert resp.status_code == 200
    page = resp.json()
    assert page["messages"][0]["content"] == "hi"
    assert page["messages"][0]["user"]["display_name"] == "Bob Builder"
    assert page["has_more"] is False


@pytest.mark.asyncio
async def test_creator_cannot_remove_self(client: AsyncClient, team):
    alice = team["users"]["alice"]
    ops = await _private_channel(client, team)

    resp = await client.delete(
        f"{_base(team)}/channels/{ops['id']}/members/{alice.id}",
        headers=team["headers"]["alice"],
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Cannot remove the channel creator"


@pytest.mark.asyncio
async def test_creator_removes_member(client: AsyncClient, team, session):
    bob = team["users"]["bob"]
    ops = await _private_channel(client, team)
    base = f"{_base(team)}/channels/{ops['id']}"
    await client.post(f"{base}/members", json={"user_ids": [str(bob.id)]}, headers=team["headers"]["alice"])

    resp = await client.delete(f"{base}/members/{bob.id}", headers=team["headers"]["alice"])
    assert resp.status_code == 204
    assert await membership.get(session, uuid.UUID(ops["id"]), bob.id) is None

    resp = await client.delete(f"{base}/members/{bob.id}", headers=team["headers"]["alice"])
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_only_creator_removes_members(client: AsyncClient, team):
    bob, carol = team["users"]["bob"], team["users"]["carol"]
    ops = await _private_channel(client, team)
    base = f"{_base(team)}/channels/{ops['id']}"
    await client.post(
        f"{base}/members",
        json={"user_ids": [str(bob.id), str(carol.id)]},
        headers=team["headers"]["alice"],
    )

    resp = await client.delete(f"{base}/members/{carol.id}", headers=team["headers"]["bob"])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_add_members_rejects_whole_batch_across_tenants(client: AsyncClient, team, seed_tenant, session):
    other = await seed_tenant("globex", dana=("Dana", UserRole.MEMBER))
    bob, dana = team["users"]["bob"], other["users"]["dana"]
    ops = await _private_channel(client, team)

    resp = await client.post(
        f"{_base(team)}/channels/{ops['id']}/members",
        json={"user_ids": [str(bob.id), str(dana.id)]},
        headers=team["headers"]["alice"],
    )
    assert resp.status_code == 403

    rows = (await session.execute(
        select(Membership).where(Membership.channel_id == uuid.UUID(ops["id"]))
    )).scalars().all()
    assert [m.role for m in rows] == [MemberRole.OWNER]


@pytest.mark.asyncio
async def test_add_members_deduplicates(client: AsyncClient, team):
    alice, bob = team["users"]["alice"], team["users"]["bob"]
    ops = await _private_channel(client, team)
    url = f"{_base(team)}/channels/{ops['id']}/members"

    await client.post(url, json={"user_ids": [str(bob.id)]}, headers=team["headers"]["alice"])
    resp = await client.post(
        url,
        json={"user_ids": [str(bob.id), str(bob.id), str(alice.id)]},
        headers=team["headers"]["alice"],
    )
    assert resp.status_code == 200
    roles = {m["user_id"]: m["role"] for m in resp.json()}
    assert roles == {str(bob.id): "MEMBER", str(alice.id): "OWNER"}


@pytest.mark.asyncio
async def test_add_members_requires_admin_and_private(client: AsyncClient, team):
    bob, carol = team["users"]["bob"], team["users"]["carol"]
    ops = await _private_channel(client, team)

    resp = await client.post(
        f"{_base(team)}/channels/{ops['id']}/members",
        json={"user_ids": [str(carol.id)]},
        headers=team["headers"]["bob"],
    )
    assert resp.status_code == 403

    resp = await client.post(f"{_base(team)}/channels", json={"name": "general"}, headers=team["headers"]["alice"])
    general = resp.json()
    resp = await client.post(
        f"{_base(team)}/channels/{general['id']}/members",
        json={"user_ids": [str(bob.id)]},
        headers=team["headers"]["alice"],
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_membership_insert_race_recovers(session, team):
    """A lost insert race is answered with the row the winner wrote."""
    alice, bob = team["users"]["alice"], team["users"]["bob"]
    channel = Channel(tenant_id=team["tenant"].id, name="general", type=ChannelType.PUBLIC, created_by=alice.id)
    session.add(channel)
    await session.flush()
    winner = Membership(channel_id=channel.id, user_id=bob.id)
    session.add(winner)
    await session.commit()

    real_get = membership.get
    lookup = AsyncMock(side_effect=[None, winner])
    with patch.object(membership, "get", lookup):
        member, created = await membership.add(session, channel.id, bob.id)

    assert created is False
    assert member.id == winner.id
    assert lookup.await_count == 2

    rows = (await session.execute(
        select(Membership).where(Membership.channel_id == channel.id)
    )).scalars().all()
    assert len(rows) == 1
    assert await real_get(session, channel.id, bob.id) is not None
