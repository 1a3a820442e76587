"""
Tests for roster providers and eligibility snapshots.
"""
from types import SimpleNamespace

import httpx
import pytest

from boardvote.services.eligibility import (
    HttpRosterProvider,
    RosterEntry,
    StaticRosterProvider,
    build_eligibility,
)
from boardvote.services.exceptions import InvalidConfiguration, RosterUnavailable


def board_vote(board_id="board-1", meeting_id="meeting-1"):
    return SimpleNamespace(id="vote0000000001", board_id=board_id, meeting_id=meeting_id)


class TestHttpRosterProvider:
    @pytest.mark.asyncio
    async def test_fetches_board_voters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"items": [
                {"user_id": "u1", "user_name": "Ada", "user_role": "director", "weight": 2},
                {"user_id": "u2", "user_name": "Grace"},
                {"user_id": 3, "eligible": False},
            ]})

        provider = HttpRosterProvider(
            base_url="http://directory.test/api/",
            headers={"Authorization": "Bearer svc"},
            transport=httpx.MockTransport(handler),
        )
        roster = await provider.get_roster(board_vote())

        assert seen["url"] == "http://directory.test/api/boards/board-1/voters?meeting_id=meeting-1"
        assert seen["auth"] == "Bearer svc"
        assert roster == [
            RosterEntry(user_id="u1", user_name="Ada", user_role="director", weight=2.0),
            RosterEntry(user_id="u2", user_name="Grace"),
            RosterEntry(user_id="3", user_name="3", eligible=False),
        ]

    @pytest.mark.asyncio
    async def test_accepts_plain_list(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[{"user_id": "u1"}]))
        provider = HttpRosterProvider(base_url="http://directory.test", transport=transport)

        roster = await provider.get_roster(board_vote(meeting_id=None))
        assert [e.user_id for e in roster] == ["u1"]

    @pytest.mark.asyncio
    async def test_server_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        provider = HttpRosterProvider(base_url="http://directory.test", transport=transport)

        with pytest.raises(RosterUnavailable):
            await provider.get_roster(board_vote())

    @pytest.mark.asyncio
    async def test_malformed_entries(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"items": [{"name": "x"}]}))
        provider = HttpRosterProvider(base_url="http://directory.test", transport=transport)

        with pytest.raises(RosterUnavailable):
            await provider.get_roster(board_vote())

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr("boardvote.services.eligibility.settings.ROSTER_SERVICE_URL", None)
        provider = HttpRosterProvider()

        with pytest.raises(RosterUnavailable):
            await provider.get_roster(board_vote())

    @pytest.mark.asyncio
    async def test_vote_without_board(self):
        provider = HttpRosterProvider(base_url="http://directory.test")
        with pytest.raises(RosterUnavailable):
            await provider.get_roster(board_vote(board_id=None))


class TestBuildEligibility:
    def test_rows_for_each_entry(self):
        rows = build_eligibility("vote-1", [
            RosterEntry(user_id="u1", user_name="Ada", weight=1.5),
            RosterEntry(user_id="u2", user_name="Grace", eligible=False),
        ])
        assert [(r.vote_id, r.user_id, r.weight, r.eligible) for r in rows] == [
            ("vote-1", "u1", 1.5, True),
            ("vote-1", "u2", 1.0, False),
        ]

    def test_duplicates_keep_first(self, caplog):
        with caplog.at_level("WARNING", logger="boardvote.services.eligibility"):
            rows = build_eligibility("vote-1", [
                RosterEntry(user_id="u1", user_name="Ada"),
                RosterEntry(user_id="u1", user_name="Ada again", weight=4.0),
            ])
        assert len(rows) == 1
        assert rows[0].user_name == "Ada"
        assert "Duplicate roster entry" in caplog.text

    def test_negative_weight(self):
        with pytest.raises(InvalidConfiguration):
            build_eligibility("vote-1", [RosterEntry(user_id="u1", user_name="Ada", weight=-1.0)])

    def test_zero_weight_is_allowed(self):
        rows = build_eligibility("vote-1", [RosterEntry(user_id="u1", user_name="Observer", weight=0.0)])
        assert rows[0].weight == 0.0


class TestStaticRosterProvider:
    @pytest.mark.asyncio
    async def test_returns_a_copy(self):
        provider = StaticRosterProvider([RosterEntry(user_id="u1", user_name="Ada")])
        roster = await provider.get_roster(board_vote())
        roster.append(RosterEntry(user_id="u2", user_name="Grace"))

        assert len(await provider.get_roster(board_vote())) == 1
