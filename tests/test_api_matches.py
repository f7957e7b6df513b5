# tests/test_api_matches.py

"""Tests for the Match API endpoints and the validation workflow over HTTP."""

from datetime import timedelta

import pytest
from clubrank.clock import FrozenClock
from httpx import AsyncClient

from conftest import RecordingNotifier


def as_player(player_id: int) -> dict[str, str]:
    return {"X-Player-Id": str(player_id)}


async def create_player(client: AsyncClient, name: str, **fields) -> int:
    response = await client.post("/players/", json={"name": name, "club_id": 1, **fields})
    assert response.status_code == 201
    return response.json()["id"]


async def post_report(
    client: AsyncClient,
    clock: FrozenClock,
    reporter_id: int,
    opponent_id: int,
    score: str = "6-4 6-3",
    match_format: str = "three_sets",
    **fields,
):
    payload = {
        "opponent_id": opponent_id,
        "score": score,
        "format": match_format,
        "played_at": (clock.now() - timedelta(hours=2)).isoformat(),
        **fields,
    }
    return await client.post("/matches/", json=payload, headers=as_player(reporter_id))


@pytest.fixture
async def players(async_client: AsyncClient) -> dict[str, int]:
    return {
        "alice": await create_player(async_client, "Alice"),
        "bob": await create_player(async_client, "Bob"),
        "admin": await create_player(async_client, "Admin", is_admin=True),
    }


# =============================================================================
# Reporting
# =============================================================================


@pytest.mark.asyncio
async def test_report_match(
    async_client: AsyncClient,
    players: dict[str, int],
    clock: FrozenClock,
    notifier: RecordingNotifier,
):
    """Bob reports a loss; the match is stored from Alice's side."""
    response = await post_report(
        async_client, clock, players["bob"], players["alice"], "4-6 3-6"
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending_confirmation"
    assert data["player1_id"] == players["alice"]
    assert data["winner_id"] == players["alice"]
    assert data["reported_by"] == players["bob"]
    assert data["score_text"] == "6-4 6-3"
    assert data["score"][0] == {"p1": 6, "p2": 4, "tiebreak": None, "super_tiebreak": False}
    assert data["rating_applied"] is False
    assert data["player1_rating_after"] is None
    assert notifier.kinds_for(players["alice"]) == ["match_reported"]


@pytest.mark.asyncio
async def test_report_requires_identity(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    response = await async_client.post(
        "/matches/",
        json={
            "opponent_id": players["bob"],
            "score": "6-4 6-3",
            "format": "two_sets",
            "played_at": clock.now().isoformat(),
        },
    )

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "score, match_format, error_type",
    [
        ("6-4 6-5", "two_sets", "InvalidScoreError"),
        ("6-4 3-6", "three_sets", "InvalidScoreError"),
        ("6-4", "super_tiebreak", "InvalidScoreError"),
    ],
)
async def test_report_invalid_score(
    async_client: AsyncClient,
    players: dict[str, int],
    clock: FrozenClock,
    score: str,
    match_format: str,
    error_type: str,
):
    response = await post_report(
        async_client, clock, players["alice"], players["bob"], score, match_format
    )

    assert response.status_code == 422
    assert response.json()["error_type"] == error_type


@pytest.mark.asyncio
async def test_report_rejections(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    """Business rules on the opponent, winner and date come back as 422 or 404."""
    alice, bob = players["alice"], players["bob"]
    outsider = await create_player(async_client, "Outsider", club_id=9)

    self_report = await post_report(async_client, clock, alice, alice)
    other_club = await post_report(async_client, clock, alice, outsider)
    missing = await post_report(async_client, clock, alice, 999)
    mismatch = await post_report(async_client, clock, alice, bob, winner_id=bob)
    future = await async_client.post(
        "/matches/",
        json={
            "opponent_id": bob,
            "score": "6-4 6-3",
            "format": "two_sets",
            "played_at": (clock.now() + timedelta(days=1)).isoformat(),
        },
        headers=as_player(alice),
    )
    bad_format = await post_report(async_client, clock, alice, bob, match_format="pro_set")

    assert self_report.json()["error_type"] == "SelfOpponentError"
    assert other_club.json()["error_type"] == "DifferentClubError"
    assert missing.status_code == 404
    assert mismatch.json()["error_type"] == "WinnerMismatchError"
    assert future.json()["error_type"] == "InvalidMatchDateError"
    for response in (self_report, other_club, mismatch, future, bad_format):
        assert response.status_code == 422

    listing = await async_client.get("/matches/")
    assert listing.json()["total"] == 0


# =============================================================================
# Validation workflow
# =============================================================================


@pytest.mark.asyncio
async def test_confirm_flow(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    """Report, confirm, and check the ratings and ledger that result."""
    alice, bob = players["alice"], players["bob"]
    match_id = (await post_report(async_client, clock, alice, bob)).json()["id"]

    validation = await async_client.get(f"/matches/{match_id}/validation")
    assert validation.status_code == 200
    assert validation.json()["hours_remaining"] == 24
    assert validation.json()["awaiting_player_id"] == bob

    by_reporter = await async_client.post(
        f"/matches/{match_id}/confirm", headers=as_player(alice)
    )
    assert by_reporter.status_code == 403
    assert by_reporter.json()["error_type"] == "ReporterCannotValidateError"

    clock.advance(hours=1)
    confirmed = await async_client.post(
        f"/matches/{match_id}/confirm", headers=as_player(bob)
    )
    assert confirmed.status_code == 200
    body = confirmed.json()
    assert (body["outcome"], body["changed"]) == ("confirmed", True)
    assert body["match"]["status"] == "confirmed"
    assert body["match"]["player1_rating_after"] == 1223
    assert body["match"]["rating_breakdown"]["k_factor"] == 40

    again = await async_client.post(
        f"/matches/{match_id}/confirm", headers=as_player(bob)
    )
    assert again.status_code == 200
    assert (again.json()["outcome"], again.json()["changed"]) == (
        "already_finalized",
        False,
    )

    winner = (await async_client.get(f"/players/{alice}")).json()
    assert (winner["current_rating"], winner["wins"]) == (1223, 1)
    history = (await async_client.get(f"/players/{bob}/rating-history")).json()
    assert [(e["delta"], e["reason"]) for e in history["items"]] == [
        (-20, "match_result")
    ]
    assert history["items"][0]["match_id"] == match_id


@pytest.mark.asyncio
async def test_contest_and_resolve_flow(
    async_client: AsyncClient,
    players: dict[str, int],
    clock: FrozenClock,
    notifier: RecordingNotifier,
):
    """A confirmed result is contested, reversed, then reinstated by an admin."""
    alice, bob, admin = players["alice"], players["bob"], players["admin"]
    match_id = (await post_report(async_client, clock, alice, bob)).json()["id"]
    await async_client.post(f"/matches/{match_id}/confirm", headers=as_player(bob))
    clock.advance(days=2)

    contested = await async_client.post(
        f"/matches/{match_id}/contest",
        json={"reason": "Wrong score entered"},
        headers=as_player(bob),
    )
    assert contested.status_code == 200
    match = contested.json()["match"]
    assert match["status"] == "contested"
    assert match["contest_reason"] == "Wrong score entered"
    assert match["rating_applied"] is False
    assert "match_contested_admin" in notifier.kinds_for(admin)

    confirm_contested = await async_client.post(
        f"/matches/{match_id}/confirm", headers=as_player(bob)
    )
    assert confirm_contested.status_code == 409

    not_admin = await async_client.post(
        f"/matches/{match_id}/resolve",
        json={"resolution": "reinstated"},
        headers=as_player(alice),
    )
    assert not_admin.status_code == 403
    assert not_admin.json()["error_type"] == "AdminRequiredError"

    resolved = await async_client.post(
        f"/matches/{match_id}/resolve",
        json={"resolution": "reinstated"},
        headers=as_player(admin),
    )
    assert resolved.status_code == 200
    match = resolved.json()["match"]
    assert match["status"] == "resolved"
    assert match["resolution"] == "reinstated"
    assert match["resolved_by"] == admin

    history = (await async_client.get(f"/players/{alice}/rating-history")).json()
    assert [e["delta"] for e in history["items"]] == [23, -23, 23]
    reversals = await async_client.get(
        f"/players/{alice}/rating-history", params={"reason": "reversal"}
    )
    assert reversals.json()["total"] == 1


@pytest.mark.asyncio
async def test_contest_without_body(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    """A reason is optional."""
    match_id = (
        await post_report(async_client, clock, players["alice"], players["bob"])
    ).json()["id"]

    response = await async_client.post(
        f"/matches/{match_id}/contest", headers=as_player(players["bob"])
    )

    assert response.status_code == 200
    assert response.json()["match"]["contest_reason"] is None


@pytest.mark.asyncio
async def test_contest_after_window_returns_409(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    alice, bob = players["alice"], players["bob"]
    match_id = (await post_report(async_client, clock, alice, bob)).json()["id"]
    await async_client.post(f"/matches/{match_id}/confirm", headers=as_player(bob))
    clock.advance(days=8)

    response = await async_client.post(
        f"/matches/{match_id}/contest", headers=as_player(alice)
    )

    assert response.status_code == 409
    assert response.json()["error_type"] == "ContestationWindowClosedError"


@pytest.mark.asyncio
async def test_resolve_rejects_unknown_resolution(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    match_id = (
        await post_report(async_client, clock, players["alice"], players["bob"])
    ).json()["id"]

    response = await async_client.post(
        f"/matches/{match_id}/resolve",
        json={"resolution": "replayed"},
        headers=as_player(players["admin"]),
    )

    assert response.status_code == 422


# =============================================================================
# Reading matches
# =============================================================================


@pytest.mark.asyncio
async def test_read_missing_match(async_client: AsyncClient):
    response = await async_client.get("/matches/999999")

    assert response.status_code == 404
    assert response.json()["error_type"] == "MatchNotFoundError"
    assert (await async_client.get("/matches/999999/validation")).status_code == 404


@pytest.mark.asyncio
async def test_list_matches_filters(
    async_client: AsyncClient, players: dict[str, int], clock: FrozenClock
):
    alice, bob = players["alice"], players["bob"]
    carol = await create_player(async_client, "Carol")
    first = (await post_report(async_client, clock, alice, bob)).json()["id"]
    await post_report(async_client, clock, bob, carol)
    await async_client.post(f"/matches/{first}/confirm", headers=as_player(bob))

    confirmed = await async_client.get("/matches/", params={"status": "confirmed"})
    with_carol = await async_client.get("/matches/", params={"player_id": carol})
    everything = await async_client.get("/matches/", params={"club_id": 1})
    other_club = await async_client.get("/matches/", params={"club_id": 2})

    assert [m["id"] for m in confirmed.json()["items"]] == [first]
    assert with_carol.json()["total"] == 1
    assert everything.json()["total"] == 2
    assert other_club.json()["total"] == 0
    assert (await async_client.get("/matches/?status=lost")).status_code == 422
