"""
Tenant number resolution.

Maps a dialed number to the tenant that owns it. Lookups are served from an
immutable in-memory snapshot; the snapshot is rebuilt only when the routing
source reports a new version marker. Refresh is single-writer and never
blocks readers: a reader that arrives mid-refresh gets the previous
snapshot, and a failed refresh leaves the previous snapshot in place.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Hashable, List, Mapping, Optional

import structlog
from prometheus_client import Counter
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from everycall.core.models import TenantRouting
from everycall.telephony.phone import normalize_phone

logger = structlog.get_logger(__name__)

_ROUTING_RELOADS = Counter(
    "everycall_tenant_routing_reloads_total",
    "Routing table reload attempts",
    labelnames=("result",),
)


class RoutingSourceError(Exception):
    """The routing source could not be read or parsed."""


class _RoutingRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tenant_id: str = Field(alias="tenantId", min_length=1)
    number_id: str = Field(alias="numberId", min_length=1)
    phone_number: str = Field(alias="phoneNumber", min_length=1)
    active: bool = False


class RoutingSource(ABC):
    """Backing store for the routing table."""

    @abstractmethod
    def version(self) -> Hashable:
        """Cheap change marker; raises RoutingSourceError when unavailable."""

    @abstractmethod
    def load(self) -> List[Dict[str, Any]]:
        """Full table as raw records; raises RoutingSourceError on failure."""


class FileRoutingSource(RoutingSource):
    """JSON file holding a list of ``{tenantId, numberId, phoneNumber, active}`` records."""

    def __init__(self, path: str):
        self.path = os.path.abspath(path)

    def version(self) -> Hashable:
        try:
            st = os.stat(self.path)
        except OSError as e:
            raise RoutingSourceError(f"routing file unavailable: {e}") from e
        return (st.st_mtime_ns, st.st_size)

    def load(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RoutingSourceError(f"routing file unreadable: {e}") from e
        if not isinstance(data, list):
            raise RoutingSourceError("routing file must contain a JSON list")
        return data


def build_snapshot(records: List[Any]) -> Dict[str, TenantRouting]:
    """
    Index raw records by normalized phone number.

    Malformed records are skipped. When a number appears more than once, an
    active routing beats an inactive one and the first active routing wins.
    """
    snapshot: Dict[str, TenantRouting] = {}
    for idx, raw in enumerate(records):
        try:
            record = _RoutingRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping malformed routing record", index=idx, errors=e.error_count())
            continue
        phone = normalize_phone(record.phone_number)
        if not phone:
            logger.warning("Skipping routing record without a usable number", index=idx)
            continue
        routing = TenantRouting(
            tenant_id=record.tenant_id,
            number_id=record.number_id,
            phone_number=phone,
            active=record.active,
        )
        existing = snapshot.get(phone)
        if existing is None or (routing.active and not existing.active):
            snapshot[phone] = routing
        elif routing.active and existing.active:
            logger.warning(
                "Multiple active routings for one number; keeping the first",
                phone_number=phone,
                kept_tenant_id=existing.tenant_id,
                ignored_tenant_id=routing.tenant_id,
            )
    return snapshot


class TenantNumberResolver:
    """Owns the routing snapshot. Exposes only ``resolve`` and ``refresh``."""

    _UNLOADED = object()

    def __init__(self, source: RoutingSource):
        self._source = source
        self._snapshot: Mapping[str, TenantRouting] = {}
        self._version: Any = self._UNLOADED
        self._refresh_lock = threading.Lock()

    def refresh(self) -> bool:
        """
        Reload the snapshot if the source version changed.

        Returns True when a new snapshot was installed. If another caller is
        already refreshing, returns False immediately and the caller keeps
        reading the current snapshot.
        """
        if not self._refresh_lock.acquire(blocking=False):
            return False
        try:
            try:
                version = self._source.version()
            except RoutingSourceError as e:
                _ROUTING_RELOADS.labels(result="error").inc()
                logger.warning("Routing source version check failed; serving previous table", error=str(e))
                return False
            if version == self._version:
                return False
            try:
                records = self._source.load()
            except RoutingSourceError as e:
                _ROUTING_RELOADS.labels(result="error").inc()
                logger.warning("Routing table reload failed; serving previous table", error=str(e))
                return False
            snapshot = build_snapshot(records)
            # Single reference assignment; readers see either old or new, never partial
            self._snapshot = snapshot
            self._version = version
            _ROUTING_RELOADS.labels(result="ok").inc()
            logger.info("Routing table loaded", entries=len(snapshot))
            return True
        finally:
            self._refresh_lock.release()

    def resolve(self, to_number: str) -> Optional[TenantRouting]:
        """
        Return the active routing for a number, or None when unmapped or inactive.
        """
        self.refresh()
        normalized = normalize_phone(to_number)
        if not normalized:
            return None
        routing = self._snapshot.get(normalized)
        if routing is None or not routing.active:
            return None
        return routing
