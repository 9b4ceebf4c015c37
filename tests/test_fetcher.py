"""
Tests for provider normalization and the per-league snapshot fetch.
"""

import httpx
import pytest

from gamebridge.services.fetcher import (
    SnapshotFetcher,
    extract_live_game,
    normalize_league,
    normalize_status,
)

BASE = "https://provider.test/v1"


def _raw_game(game_id="101", status="in_progress", league="mlb", home_score=3, away_score="x"):
    return {
        "id": game_id,
        "league": league,
        "status": status,
        "start_time": "2025-06-01T19:05:00Z",
        "home_team": {"id": "tex", "name": "Rangers", "score": home_score, "record": "50-30"},
        "awayTeam": {"id": "hou", "name": "Astros", "abbreviation": "HOU", "score": away_score},
    }


class TestNormalization:
    @pytest.mark.parametrize("raw", ["in_progress", "LIVE", "in", "STATUS_IN_PROGRESS"])
    def test_live_statuses(self, raw):
        assert normalize_status(raw) == "live"

    @pytest.mark.parametrize("raw", ["final", "post", "STATUS_FINAL", "completed"])
    def test_final_statuses(self, raw):
        assert normalize_status(raw) == "final"

    @pytest.mark.parametrize("raw", ["pre", "", None, "delayed"])
    def test_everything_else_is_scheduled(self, raw):
        assert normalize_status(raw) == "scheduled"

    def test_unknown_league_falls_back_to_fetched(self):
        assert normalize_league("cricket", "nfl") == "nfl"
        assert normalize_league("NBA", "nfl") == "nba"

    def test_extract_mixed_case_keys(self):
        game = extract_live_game(_raw_game(), "mlb")
        assert game["gameId"] == "101"
        assert game["status"] == "live"
        assert game["homeTeam"]["abbreviation"] == "RAN"
        assert game["homeTeam"]["record"] == "50-30"
        assert game["homeTeam"]["score"] == 3
        assert game["awayTeam"]["abbreviation"] == "HOU"
        assert game["awayTeam"]["score"] == 0
        assert game["startTime"] == "2025-06-01T19:05:00Z"

    def test_missing_id_is_dropped(self):
        raw = _raw_game()
        del raw["id"]
        assert extract_live_game(raw, "mlb") is None

    def test_negative_score_becomes_zero(self):
        assert extract_live_game(_raw_game(home_score=-4), "mlb")["homeTeam"]["score"] == 0


class TestSnapshotFetcher:
    @pytest.mark.asyncio
    async def test_league_failures_are_isolated(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, request.headers.get("Authorization")))
            if "/sports/mlb/" in request.url.path:
                return httpx.Response(200, json={"games": [_raw_game()]})
            if "/sports/nfl/" in request.url.path:
                return httpx.Response(503, json={"error": "down"})
            return httpx.Response(200, text="not json")

        fetcher = SnapshotFetcher("k-123", BASE, transport=httpx.MockTransport(handler))
        snap = await fetcher.fetch(["mlb", "nfl", "ncaaf"])

        assert [g["gameId"] for g in snap["games"]] == ["101"]
        assert snap["source"] == "live"
        assert snap["standings"] == []
        assert sorted(path for path, _ in seen) == [
            "/v1/sports/mlb/games/live",
            "/v1/sports/ncaaf/games/live",
            "/v1/sports/nfl/games/live",
        ]
        assert {auth for _, auth in seen} == {"Bearer k-123"}

    @pytest.mark.asyncio
    async def test_transport_error_contributes_nothing(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        fetcher = SnapshotFetcher("k", BASE, transport=httpx.MockTransport(handler))
        snap = await fetcher.fetch(["mlb"])
        assert snap["games"] == []

    @pytest.mark.asyncio
    async def test_malformed_body_contributes_nothing(self):
        def handler(request):
            return httpx.Response(200, json={"games": "soon"})

        fetcher = SnapshotFetcher("k", BASE, transport=httpx.MockTransport(handler))
        assert (await fetcher.fetch(["nba"]))["games"] == []

    @pytest.mark.asyncio
    async def test_duplicate_ids_merge(self):
        def handler(request):
            return httpx.Response(200, json={"games": [_raw_game("7", league="")]})

        fetcher = SnapshotFetcher("k", BASE, transport=httpx.MockTransport(handler))
        snap = await fetcher.fetch(["mlb", "nfl"])
        assert len(snap["games"]) == 1
        assert snap["games"][0]["league"] in {"mlb", "nfl"}
