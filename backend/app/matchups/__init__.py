"""Live matchup update subsystem.

Public API:
    WatchKey              - (league, week) identifier of a watched slate
    Snapshot              - Comparable projection of a slate's scores
    ResponseCache         - Upstream response cache with stale fallback
    CachedUpstream        - Cache-wrapped access to every upstream endpoint
    SnapshotBuilder       - Joins upstream data into Snapshots
    SubscriptionRegistry  - Connected stream subscribers
    Broadcaster           - Change detection and fan-out
    AdaptiveScheduler     - Game-time aware polling loop
    UpstreamGateway       - Abstract interface for data providers
    create_upstream_gateway - Factory that selects simulator or REST APIs
    create_stream_router  - FastAPI router factory for the SSE and health endpoints
    create_api_router     - FastAPI router factory for the upstream proxy routes
"""

from .broadcaster import Broadcaster
from .cache import ResponseCache
from .errors import BuildError, UpstreamError
from .factory import create_upstream_gateway
from .interface import UpstreamGateway
from .models import Snapshot, WatchKey
from .registry import SubscriptionRegistry
from .routes import create_api_router
from .scheduler import AdaptiveScheduler
from .settings import Settings
from .snapshot import SnapshotBuilder
from .stream import create_stream_router
from .upstream import CachedUpstream

__all__ = [
    "AdaptiveScheduler",
    "Broadcaster",
    "BuildError",
    "CachedUpstream",
    "ResponseCache",
    "Settings",
    "Snapshot",
    "SnapshotBuilder",
    "SubscriptionRegistry",
    "UpstreamError",
    "UpstreamGateway",
    "WatchKey",
    "create_api_router",
    "create_stream_router",
    "create_upstream_gateway",
]
