"""
backend/tests/test_match_sync.py

Purpose:
    Match synchronization behavior against in-memory provider and CMS fakes:
    idempotence, natural-key matching, per-competition isolation, dry-run,
    limit, custom-match protection and CMS-only field preservation.
"""

from __future__ import annotations

from typing import Any

import pytest

from matchsync.config import settings
from matchsync.errors import ReconciliationError, UpstreamFetchError
from matchsync.models.discovery import Competition, DiscoveryCache
from matchsync.models.match import CmsMatch, MatchContent, SyncOptions
from matchsync.models.provider import ProviderMatch
from matchsync.providers.base import MatchStore
from matchsync.services.match_sync_service import MatchSyncEngine


def _provider_match(match_id: str, league_id: str, home: str, away: str, **extra: Any) -> ProviderMatch:
    payload = {
        "match-id": match_id,
        "league-id": league_id,
        "kickoff": "2025-04-05T13:00:00Z",
        "status": "Scheduled",
        "home-team": home,
        "away-team": away,
    }
    payload.update(extra)
    return ProviderMatch.model_validate(payload)


def _competition(cid: str, scoped: str | None = "T", season: str = "2025") -> Competition:
    return Competition(
        competition_id=cid,
        competition_name=f"League {cid}",
        start_date=f"{season}-03-01T00:00:00Z",
        season_year=season,
        team_scoped_id=scoped,
    )


def _cache(*competitions: Competition) -> DiscoveryCache:
    return DiscoveryCache(team_id="OSTER", team_name="Östers IF", competitions=list(competitions))


class _FakeSmc:
    """Matches keyed by (league_id, "home"|"away"); an Exception value fails that league."""

    def __init__(self, matches: dict[str, Any]):
        self.matches = matches
        self.calls: list[tuple[str, str | None, str | None]] = []

    def ensure_configured(self) -> None:
        return None

    async def list_matches(self, league_id, *, home_team_id=None, away_team_id=None):
        self.calls.append((league_id, home_team_id, away_team_id))
        value = self.matches.get(league_id, {})
        if isinstance(value, Exception):
            raise value
        return list(value.get("home" if home_team_id else "away", []))


class _FakeCms(MatchStore):
    def __init__(self, records: list[CmsMatch] | None = None, *, fail_for: set[str] | None = None):
        self.records: dict[str, CmsMatch] = {r.cms_id: r for r in records or []}
        self.fail_for = fail_for or set()
        self.creates: list[dict] = []
        self.updates: list[tuple[str, dict]] = []
        self._next_id = 1000

    async def list_all(self, post_type, *, limit):
        return [r.model_copy(deep=True) for r in list(self.records.values())[:limit]]

    async def find_by_slug_or_natural_key(self, *, slug=None, external_match_id=None, external_competition_id=None):
        for record in self.records.values():
            if record.content.is_custom_match:
                continue
            if record.content.natural_key() == (external_match_id, external_competition_id):
                return record.model_copy(deep=True)
        for record in self.records.values():
            if slug and record.slug == slug:
                return record.model_copy(deep=True)
        return None

    async def create(self, post_type_id, fields):
        content: MatchContent = fields["content"]
        if content.external_match_id in self.fail_for:
            raise ReconciliationError("GraphQL errors: boom", external_match_id=content.external_match_id)
        self._next_id += 1
        record = CmsMatch(cms_id=str(self._next_id), title=fields["title"], slug=fields["slug"], content=content)
        self.records[record.cms_id] = record
        self.creates.append(fields)
        return record

    async def update(self, cms_id, fields):
        current = self.records[cms_id]
        record = CmsMatch(
            cms_id=cms_id,
            title=fields["title"],
            slug=current.slug,
            content=fields["content"],
            extra=fields.get("extra") or {},
        )
        self.records[cms_id] = record
        self.updates.append((cms_id, fields))
        return record


class _RecordingGateway:
    def __init__(self):
        self.calls = 0

    async def invalidate_after_sync(self):
        self.calls += 1


def _engine(smc, cms, gateway=None) -> MatchSyncEngine:
    return MatchSyncEngine(smc, cms, gateway=gateway, post_type_id="pt-1", post_type_slug="matcher", list_limit=500)


@pytest.fixture(autouse=True)
def _timezone(monkeypatch):
    monkeypatch.setattr(settings, "MATCH_TIMEZONE", "Europe/Stockholm")


@pytest.mark.asyncio
async def test_second_run_is_a_no_op():
    smc = _FakeSmc({
        "1": {
            "home": [_provider_match("10", "1", "Östers IF", "GAIS")],
            "away": [_provider_match("11", "1", "Malmö FF", "Östers IF")],
        }
    })
    cms = _FakeCms()
    engine = _engine(smc, cms)
    cache = _cache(_competition("1"))

    first = await engine.sync(cache, SyncOptions(season="2025"))
    second = await engine.sync(cache, SyncOptions(season="2025"))

    assert (first.created, first.updated, first.skipped) == (2, 0, 0)
    assert (second.created, second.updated, second.skipped) == (0, 0, 2)
    assert first.success and second.success
    assert len(cms.records) == 2


@pytest.mark.asyncio
async def test_field_drift_updates_same_record():
    cms = _FakeCms()
    cache = _cache(_competition("1"))
    await _engine(_FakeSmc({"1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS")]}}), cms).sync(
        cache, SyncOptions(season="2025")
    )
    record_id = next(iter(cms.records))

    drifted = _FakeSmc({
        "1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS Göteborg", status="Over", **{"goals-home": 3})]}
    })
    result = await _engine(drifted, cms).sync(cache, SyncOptions(season="2025"))

    assert (result.created, result.updated) == (0, 1)
    assert list(cms.records) == [record_id]
    content = cms.records[record_id].content
    assert content.away_team == "GAIS Göteborg"
    assert content.status == "over"
    assert content.goals_home == 3


@pytest.mark.asyncio
async def test_update_preserves_cms_only_fields():
    existing = CmsMatch(
        cms_id="7",
        title="Östers IF vs GAIS",
        slug="2025-04-05--sters-if-vs-gais",
        content=MatchContent(
            home_team="Östers IF",
            away_team="GAIS",
            status="scheduled",
            external_match_id="10",
            external_competition_id="1",
        ),
        extra={"matchrapport": "Editor text", "biljettlank": "https://tickets.example"},
    )
    cms = _FakeCms([existing])
    smc = _FakeSmc({"1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS", status="Over")]}})

    result = await _engine(smc, cms).sync(_cache(_competition("1")), SyncOptions(season="2025"))

    assert result.updated == 1
    stored = cms.records["7"]
    assert stored.extra == {"matchrapport": "Editor text", "biljettlank": "https://tickets.example"}
    assert stored.title == "Östers IF vs GAIS"
    assert stored.content.last_synced_at == result.timestamp


@pytest.mark.asyncio
async def test_failing_competition_does_not_stop_the_run():
    smc = _FakeSmc({
        "1": UpstreamFetchError("SMC request timed out after 10s"),
        "2": {"home": [_provider_match("20", "2", "Östers IF", "GAIS")]},
    })
    cms = _FakeCms()

    result = await _engine(smc, cms).sync(_cache(_competition("1"), _competition("2")), SyncOptions(season="2025"))

    assert result.success is True
    assert result.created == 1
    assert [(e.code, e.competition_id) for e in result.errors] == [("upstream_fetch_failed", "1")]


@pytest.mark.asyncio
async def test_dry_run_counts_but_never_writes():
    existing = CmsMatch(
        cms_id="7",
        content=MatchContent(home_team="Östers IF", away_team="Old", external_match_id="10", external_competition_id="1"),
    )
    cms = _FakeCms([existing])
    gateway = _RecordingGateway()
    smc = _FakeSmc({
        "1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS"), _provider_match("11", "1", "Östers IF", "AIK")]}
    })

    result = await _engine(smc, cms, gateway).sync(_cache(_competition("1")), SyncOptions(season="2025", dry_run=True))

    assert (result.created, result.updated, result.skipped) == (1, 1, 0)
    assert result.dry_run is True
    assert cms.creates == [] and cms.updates == []
    assert cms.records["7"].content.away_team == "Old"
    assert gateway.calls == 0
    assert result.summary().startswith("(DRY RUN) Sync complete: 1 created, 1 updated, 0 skipped")


@pytest.mark.asyncio
async def test_limit_with_two_discovered_competitions():
    smc = _FakeSmc({
        "1": {"home": [_provider_match(str(i), "1", "Östers IF", f"Team {i}") for i in range(5)]},
        "3": {"away": [_provider_match(str(100 + i), "3", f"Cup {i}", "Östers IF") for i in range(4)]},
    })
    cms = _FakeCms()
    cache = _cache(_competition("1", scoped="A-OSTER"), _competition("3", scoped="C-OSTER"))

    result = await _engine(smc, cms).sync(cache, SyncOptions(season="2025", limit=1))

    assert result.created <= 2
    assert len(cms.creates) == result.created
    assert ("1", "A-OSTER", None) in smc.calls
    assert ("3", None, "C-OSTER") in smc.calls


@pytest.mark.asyncio
async def test_custom_match_is_never_mutated():
    custom = CmsMatch(
        cms_id="c-1",
        title="Östers IF vs GAIS",
        slug="2025-04-05--sters-if-vs-gais",
        content=MatchContent(home_team="Östers IF", away_team="GAIS", is_custom_match=True),
        extra={"note": "friendly"},
    )
    cms = _FakeCms([custom])
    smc = _FakeSmc({"1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS")]}})

    result = await _engine(smc, cms).sync(_cache(_competition("1")), SyncOptions(season="2025"))

    assert result.created == 1
    assert cms.updates == []
    assert cms.records["c-1"] == custom
    assert cms.creates[0]["slug"] == "2025-04-05--sters-if-vs-gais-10"


@pytest.mark.asyncio
async def test_custom_match_with_same_natural_key_is_ignored():
    custom = CmsMatch(
        cms_id="c-2",
        content=MatchContent(
            home_team="Östers IF", away_team="GAIS", is_custom_match=True,
            external_match_id="10", external_competition_id="1",
        ),
    )
    cms = _FakeCms([custom])
    smc = _FakeSmc({"1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS", status="Over")]}})

    result = await _engine(smc, cms).sync(_cache(_competition("1")), SyncOptions(season="2025"))

    assert result.created == 1
    assert cms.records["c-2"].content.status == ""


@pytest.mark.asyncio
async def test_missing_team_scoped_id_is_reported_and_skipped():
    smc = _FakeSmc({"2": {"home": [_provider_match("20", "2", "Östers IF", "GAIS")]}})

    result = await _engine(smc, _FakeCms()).sync(
        _cache(_competition("1", scoped=None), _competition("2")),
        SyncOptions(season="2025"),
    )

    assert result.created == 1
    assert [e.code for e in result.errors] == ["missing_team_scoped_id"]
    assert all(call[0] != "1" for call in smc.calls)


@pytest.mark.asyncio
async def test_write_failure_is_recorded_and_run_continues():
    smc = _FakeSmc({
        "1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS"), _provider_match("11", "1", "Östers IF", "AIK")]}
    })
    cms = _FakeCms(fail_for={"10"})

    result = await _engine(smc, cms).sync(_cache(_competition("1")), SyncOptions(season="2025"))

    assert result.success is True
    assert result.created == 1
    error = result.errors[0]
    assert error.code == "reconciliation_failed"
    assert (error.external_match_id, error.home_team, error.away_team) == ("10", "Östers IF", "GAIS")


@pytest.mark.asyncio
async def test_home_and_away_overlap_is_deduplicated():
    match = _provider_match("10", "1", "Östers IF", "GAIS")
    smc = _FakeSmc({"1": {"home": [match], "away": [match]}})
    cms = _FakeCms()

    result = await _engine(smc, cms).sync(_cache(_competition("1")), SyncOptions(season="2025"))

    assert result.created == 1
    assert len(cms.records) == 1


@pytest.mark.asyncio
async def test_empty_cache_and_empty_season_are_fatal():
    smc = _FakeSmc({})
    engine = _engine(smc, _FakeCms())

    empty = await engine.sync(_cache(), SyncOptions())
    wrong_season = await engine.sync(_cache(_competition("1", season="2024")), SyncOptions(season="2019"))

    assert empty.success is False
    assert [e.code for e in empty.errors] == ["empty_discovery_cache"]
    assert wrong_season.success is False
    assert wrong_season.errors[0].code == "no_competitions_for_season"
    assert "2024" in wrong_season.errors[0].message
    assert smc.calls == []


@pytest.mark.asyncio
async def test_season_all_selects_every_competition():
    smc = _FakeSmc({})
    await _engine(smc, _FakeCms()).sync(
        _cache(_competition("1", season="2025"), _competition("2", season="2024")),
        SyncOptions(season="all"),
    )
    assert {call[0] for call in smc.calls} == {"1", "2"}


@pytest.mark.asyncio
async def test_successful_writes_revalidate_matcher_cache():
    gateway = _RecordingGateway()
    cms = _FakeCms()
    smc = _FakeSmc({"1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS")]}})
    engine = _engine(smc, cms, gateway)

    await engine.sync(_cache(_competition("1")), SyncOptions(season="2025"))
    await engine.sync(_cache(_competition("1")), SyncOptions(season="2025"))

    assert gateway.calls == 1


@pytest.mark.asyncio
async def test_single_match_sync_creates_then_skips(monkeypatch):
    monkeypatch.setattr("matchsync.services.match_sync_service.current_season_year", lambda: "2025")
    smc = _FakeSmc({"1": {"home": [_provider_match("10", "1", "Östers IF", "GAIS")]}})
    cms = _FakeCms()
    engine = _engine(smc, cms)
    cache = _cache(_competition("1"))

    first = await engine.sync_single_match(cache, "10")
    second = await engine.sync_single_match(cache, "10")
    missing = await engine.sync_single_match(cache, "999")

    assert (first.success, first.action) == (True, "created")
    assert (second.success, second.action) == (True, "skipped")
    assert missing.success is False
    assert len(cms.records) == 1
