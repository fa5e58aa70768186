"""Message log endpoints — send, cursor paging, read markers, deletion."""

import uuid

import pytest
from httpx import AsyncClient
from sqlmodel import select

from teamchat.models.membership import Membership
from teamchat.models.message import Message


def _base(ctx: dict) -> str:
    return f"/v1/tenants/{ctx['tenant'].id}/chat"


async def _channel(client: AsyncClient, ctx: dict, type_: str = "PUBLIC") -> str:
    resp = await client.post(f"{_base(ctx)}/channels", json={
        "name": f"{type_.lower()}-room",
        "type": type_,
    }, headers=ctx["headers"]["alice"])
    assert resp.status_code == 201
    return resp.json()["id"]


async def _send(client: AsyncClient, ctx: dict, channel_id: str, content: str, who: str = "alice") -> dict:
    resp = await client.post(
        f"{_base(ctx)}/channels/{channel_id}/messages",
        json={"content": content},
        headers=ctx["headers"][who],
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_send_returns_message_with_author(client: AsyncClient, team):
    channel_id = await _channel(client, team)
    data = await _send(client, team, channel_id, "hello")

    assert data["content"] == "hello"
    assert data["type"] == "TEXT"
    assert data["user"]["id"] == str(team["users"]["alice"].id)


@pytest.mark.asyncio
async def test_backward_paging_has_no_gaps_or_overlap(client: AsyncClient, team):
    channel_id = await _channel(client, team)
    sent = [await _send(client, team, channel_id, f"msg {i}") for i in range(5)]
    url = f"{_base(team)}/channels/{channel_id}/messages"
    headers = team["headers"]["alice"]

    resp = await client.get(url, params={"limit": 2}, headers=headers)
    first = resp.json()
    assert [m["content"] for m in first["messages"]] == ["msg 4", "msg 3"]
    assert first["has_more"] is True

    resp = await client.get(url, params={"limit": 2, "before": first["messages"][-1]["id"]}, headers=headers)
    second = resp.json()
    assert [m["content"] for m in second["messages"]] == ["msg 2", "msg 1"]
    assert second["has_more"] is True

    resp = await client.get(url, params={"limit": 2, "before": second["messages"][-1]["id"]}, headers=headers)
    third = resp.json()
    assert [m["content"] for m in third["messages"]] == ["msg 0"]
    assert third["has_more"] is False

    seen = [m["id"] for page in (first, second, third) for m in page["messages"]]
    assert seen == [m["id"] for m in reversed(sent)]


@pytest.mark.asyncio
async def test_timestamp_cursor(client: AsyncClient, team):
    channel_id = await _channel(client, team)
    sent = [await _send(client, team, channel_id, f"msg {i}") for i in range(3)]

    resp = await client.get(
        f"{_base(team)}/channels/{channel_id}/messages",
        params={"before": sent[2]["created_at"]},
        headers=team["headers"]["alice"],
    )
    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()["messages"]] == ["msg 1", "msg 0"]


@pytest.mark.asyncio
async def test_bad_cursors(client: AsyncClient, team):
    channel_id = await _channel(client, team)
    url = f"{_base(team)}/channels/{channel_id}/messages"

    resp = await client.get(url, params={"before": "yesterday"}, headers=team["headers"]["alice"])
    assert resp.status_code == 422

    resp = await client.get(url, params={"before": "999999"}, headers=team["headers"]["alice"])
    assert resp.status_code == 404

    for before in ("99999999999999999999999", "\u00b2"):
        resp = await client.get(url, params={"before": before}, headers=team["headers"]["alice"])
        assert resp.status_code == 422, before


@pytest.mark.asyncio
async def test_delete_with_out_of_range_id_is_rejected(client: AsyncClient, team):
    resp = await client.delete(f"{_base(team)}/messages/99999999999999999999999", headers=team["headers"]["bob"])
    assert resp.status_code == 422

    resp = await client.delete(f"{_base(team)}/messages/0", headers=team["headers"]["bob"])
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_public_history_readable_by_non_member(client: AsyncClient, team):
    public_id = await _channel(client, team)
    private_id = await _channel(client, team, "PRIVATE")
    await _send(client, team, public_id, "open")
    await _send(client, team, private_id, "closed")

    resp = await client.get(f"{_base(team)}/channels/{public_id}/messages", headers=team["headers"]["bob"])
    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()["messages"]] == ["open"]

    resp = await client.get(f"{_base(team)}/channels/{private_id}/messages", headers=team["headers"]["bob"])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_non_member_cannot_send(client: AsyncClient, team, session):
    """Membership is required to post, even in public channels."""
    channel_id = await _channel(client, team)

    resp = await client.post(
        f"{_base(team)}/channels/{channel_id}/messages",
        json={"content": "let me in"},
        headers=team["headers"]["bob"],
    )
    assert resp.status_code == 403

    rows = (await session.execute(select(Message))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_client_cannot_send_system_or_blank(client: AsyncClient, team):
    channel_id = await _channel(client, team)
    url = f"{_base(team)}/channels/{channel_id}/messages"

    resp = await client.post(url, json={"content": "fake notice", "type": "SYSTEM"}, headers=team["headers"]["alice"])
    assert resp.status_code == 422

    resp = await client.post(url, json={"content": "   "}, headers=team["headers"]["alice"])
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_delete_someone_elses_message_is_noop(client: AsyncClient, team, session):
    channel_id = await _channel(client, team)
    await client.post(f"{_base(team)}/channels/{channel_id}/join", headers=team["headers"]["bob"])
    mine = await _send(client, team, channel_id, "bob says", who="bob")

    resp = await client.delete(f"{_base(team)}/messages/{mine['id']}", headers=team["headers"]["alice"])
    assert resp.status_code == 200
    assert resp.json() == {"count": 0}
    assert await session.get(Message, mine["id"]) is not None

    resp = await client.delete(f"{_base(team)}/messages/424242", headers=team["headers"]["bob"])
    assert resp.json() == {"count": 0}

    resp = await client.delete(f"{_base(team)}/messages/{mine['id']}", headers=team["headers"]["bob"])
    assert resp.json() == {"count": 1}


@pytest.mark.asyncio
async def test_mark_as_read(client: AsyncClient, team, session):
    channel_id = await _channel(client, team)
    url = f"{_base(team)}/channels/{channel_id}/read"

    resp = await client.patch(url, headers=team["headers"]["alice"])
    assert resp.json() == {"count": 1}

    resp = await client.patch(url, headers=team["headers"]["bob"])
    assert resp.json() == {"count": 0}

    row = (await session.execute(
        select(Membership).where(
            Membership.channel_id == uuid.UUID(channel_id),
            Membership.user_id == team["users"]["alice"].id,
        )
    )).scalar_one()
    await session.refresh(row)
    assert row.last_read is not None
