"""
backend/tests/test_smc_client.py

Purpose:
    SMC client contract: secret header injection, query parameters, response
    shape validation and error translation to UpstreamFetchError.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from matchsync.errors import ConfigurationError, UpstreamFetchError
from matchsync.providers.http_client import CircuitBreaker
from matchsync.providers.smc import SmcClient


def _client_with(handler, **kwargs) -> SmcClient:
    client = SmcClient(base_url="https://smc.example", secret="s3cret", max_retries=0, base_delay=0, **kwargs)
    client._client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_list_leagues_sends_secret_and_parses_payload():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {"LeagueId": 101, "LeagueName": "Allsvenskan", "StartDate": "2025-03-29T00:00:00Z",
                 "EndDate": "2025-11-09T00:00:00Z", "tournamentID": 7, "Unknown": "x"},
            ],
        )

    client = _client_with(handler)
    leagues = await client.list_leagues()

    assert seen[0].headers["Authorization"] == "s3cret"
    assert seen[0].url.path == "/leagues"
    assert leagues[0].league_id == "101"
    assert leagues[0].league_name == "Allsvenskan"
    assert leagues[0].tournament_id == 7


@pytest.mark.asyncio
async def test_list_matches_passes_team_scoped_filters():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    client = _client_with(handler)
    await client.list_matches("101", home_team_id="T1")
    await client.list_matches("101", away_team_id="T1")

    assert seen[0].url.params["home-team-id"] == "T1"
    assert "away-team-id" not in seen[0].url.params
    assert seen[1].url.params["away-team-id"] == "T1"


@pytest.mark.asyncio
async def test_non_2xx_becomes_upstream_fetch_error():
    client = _client_with(lambda request: httpx.Response(404, json={"error": "nope"}))

    with pytest.raises(UpstreamFetchError) as exc_info:
        await client.list_league_teams("999")
    assert exc_info.value.status_code == 404
    assert exc_info.value.endpoint == "/leagues/999/teams"


@pytest.mark.asyncio
async def test_match_list_must_be_a_list():
    client = _client_with(lambda request: httpx.Response(200, json={"matches": []}))

    with pytest.raises(UpstreamFetchError):
        await client.list_matches("101", home_team_id="T1")


@pytest.mark.asyncio
async def test_non_json_body_is_rejected():
    client = _client_with(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(UpstreamFetchError):
        await client.list_leagues()


@pytest.mark.asyncio
async def test_transport_errors_are_translated():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client_with(handler)
    with pytest.raises(UpstreamFetchError):
        await client.list_leagues()


@pytest.mark.asyncio
async def test_missing_secret_fails_before_any_request():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=[])

    client = SmcClient(base_url="https://smc.example", secret="")
    client._client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    with pytest.raises(ConfigurationError):
        await client.list_leagues()
    assert calls == []


@pytest.mark.asyncio
async def test_match_events_wraps_single_object():
    client = _client_with(lambda request: httpx.Response(200, json={"event-id": 3, "type": "GOAL"}))

    events = await client.get_match_events("101", "5001")
    assert events == [{"event-id": 3, "type": "GOAL"}]


@pytest.mark.asyncio
async def test_hanging_provider_hits_the_call_deadline_and_counts_against_the_circuit():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json=[])

    client = _client_with(handler, timeout=0.05)
    client._client.circuit = CircuitBreaker(failure_threshold=1)

    started = time.monotonic()
    with pytest.raises(UpstreamFetchError) as exc_info:
        await client.list_matches("101", home_team_id="T1")

    assert time.monotonic() - started < 1.0
    assert "timed out" in str(exc_info.value)
    assert client.circuit_open is True
