"""
backend/matchsync/dependencies.py

Purpose:
    FastAPI dependency providers for the service singletons, so routers can be
    exercised with fakes through app.dependency_overrides.
"""

from matchsync.services.discovery_service import DiscoveryService, discovery_service
from matchsync.services.invalidation_service import CacheInvalidationGateway, invalidation_gateway
from matchsync.services.live_data_service import LiveDataService, live_data_service
from matchsync.services.match_audit_service import NonTargetMatchAuditor, match_auditor
from matchsync.services.match_sync_service import MatchSyncEngine, match_sync_engine


def get_discovery_service() -> DiscoveryService:
    return discovery_service


def get_sync_engine() -> MatchSyncEngine:
    return match_sync_engine


def get_auditor() -> NonTargetMatchAuditor:
    return match_auditor


def get_invalidation_gateway() -> CacheInvalidationGateway:
    return invalidation_gateway


def get_live_data_service() -> LiveDataService:
    return live_data_service
