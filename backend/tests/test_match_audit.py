from __future__ import annotations

import pytest

from matchsync.config import settings
from matchsync.errors import ConfigurationError
from matchsync.models.match import CmsMatch, MatchContent
from matchsync.providers.base import MatchStore
from matchsync.services.match_audit_service import NonTargetMatchAuditor, fold_name, involves_team


class _ReadOnlyCms(MatchStore):
    def __init__(self, records):
        self.records = records
        self.list_calls: list[tuple[str, int]] = []

    async def list_all(self, post_type, *, limit):
        self.list_calls.append((post_type, limit))
        return list(self.records)

    async def find_by_slug_or_natural_key(self, **kwargs):
        raise AssertionError("audit must not look records up")

    async def create(self, post_type_id, fields):
        raise AssertionError("audit must not write")

    async def update(self, cms_id, fields):
        raise AssertionError("audit must not write")


def _record(cms_id: str, home: str, away: str) -> CmsMatch:
    return CmsMatch(
        cms_id=cms_id,
        title="",
        content=MatchContent(home_team=home, away_team=away, kickoff_date="2025-04-05"),
    )


def test_fold_name_strips_accents_and_case():
    assert fold_name("  ÖSTERS   IF ") == "osters if"
    assert involves_team("Östers IF U21", ["osters"])
    assert not involves_team("", ["osters"])


@pytest.mark.asyncio
async def test_preview_partitions_by_target_team():
    cms = _ReadOnlyCms([
        _record("1", "Östers IF", "GAIS"),
        _record("2", "Malmö FF", "Öster"),
        _record("3", "AIK", "Hammarby"),
    ])
    auditor = NonTargetMatchAuditor(cms, team_names=["Östers IF", "Öster"], post_type_slug="matcher", list_limit=1000)

    preview = await auditor.preview()

    assert [e.id for e in preview.to_keep] == ["1", "2"]
    assert [e.id for e in preview.to_delete] == ["3"]
    assert preview.to_delete[0].title == "AIK vs Hammarby"
    assert preview.to_delete[0].date == "2025-04-05"
    assert cms.list_calls == [("matcher", 1000)]


@pytest.mark.asyncio
async def test_preview_is_repeatable():
    cms = _ReadOnlyCms([_record("1", "Östers IF", "GAIS"), _record("3", "AIK", "Hammarby")])
    auditor = NonTargetMatchAuditor(cms, team_names=["Östers IF"])

    first = await auditor.preview()
    second = await auditor.preview()

    assert first.to_keep == second.to_keep
    assert first.to_delete == second.to_delete


@pytest.mark.asyncio
async def test_aliases_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "TEAM_NAME", "Östers IF")
    monkeypatch.setattr(settings, "TEAM_NAME_ALIASES", "Öster, Osters")
    cms = _ReadOnlyCms([_record("2", "Malmö FF", "Öster")])

    preview = await NonTargetMatchAuditor(cms).preview()
    assert [e.id for e in preview.to_keep] == ["2"]


@pytest.mark.asyncio
async def test_missing_team_names_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "TEAM_NAME", "")
    monkeypatch.setattr(settings, "TEAM_NAME_ALIASES", "")

    with pytest.raises(ConfigurationError):
        await NonTargetMatchAuditor(_ReadOnlyCms([])).preview()
