"""
Tenant number resolver: snapshot build, lazy refresh and failure handling.
"""

import json
import os
import threading

from everycall.tenancy.resolver import (
    FileRoutingSource,
    RoutingSource,
    RoutingSourceError,
    TenantNumberResolver,
    build_snapshot,
)


def _bump_mtime(path):
    st = os.stat(path)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))


class _CountingSource(RoutingSource):
    def __init__(self, records, version="v1"):
        self.records = records
        self.current_version = version
        self.loads = 0
        self.fail_load = False
        self.fail_version = False

    def version(self):
        if self.fail_version:
            raise RoutingSourceError("version unavailable")
        return self.current_version

    def load(self):
        if self.fail_load:
            raise RoutingSourceError("boom")
        self.loads += 1
        return list(self.records)


class TestBuildSnapshot:

    def test_normalizes_keys(self):
        snapshot = build_snapshot([
            {"tenantId": "t1", "numberId": "n1", "phoneNumber": "(425) 555-0100", "active": True},
        ])
        assert set(snapshot) == {"+14255550100"}
        assert snapshot["+14255550100"].tenant_id == "t1"

    def test_skips_malformed_records(self):
        snapshot = build_snapshot([
            {"tenantId": "t1", "phoneNumber": "+14255550100"},
            "not-a-record",
            {"tenantId": "t2", "numberId": "n2", "phoneNumber": "", "active": True},
            {"tenantId": "t3", "numberId": "n3", "phoneNumber": "+14255550101", "active": True},
        ])
        assert list(snapshot) == ["+14255550101"]

    def test_first_active_wins_and_active_beats_inactive(self):
        snapshot = build_snapshot([
            {"tenantId": "old", "numberId": "n0", "phoneNumber": "+14255550100", "active": False},
            {"tenantId": "first", "numberId": "n1", "phoneNumber": "+14255550100", "active": True},
            {"tenantId": "second", "numberId": "n2", "phoneNumber": "4255550100", "active": True},
        ])
        assert snapshot["+14255550100"].tenant_id == "first"


class TestTenantNumberResolver:

    def test_resolves_any_format(self, routing_file):
        resolver = TenantNumberResolver(FileRoutingSource(str(routing_file)))
        routing = resolver.resolve("(425) 555-0100")
        assert routing is not None
        assert routing.tenant_id == "tenant_abc"
        assert routing.number_id == "num_001"
        assert routing.phone_number == "+14255550100"

    def test_inactive_and_unmapped_return_none(self, routing_file):
        resolver = TenantNumberResolver(FileRoutingSource(str(routing_file)))
        assert resolver.resolve("+14255550199") is None
        assert resolver.resolve("+19999999999") is None
        assert resolver.resolve("") is None

    def test_picks_up_file_changes_without_restart(self, routing_file):
        resolver = TenantNumberResolver(FileRoutingSource(str(routing_file)))
        assert resolver.resolve("+14255550100").tenant_id == "tenant_abc"

        routing_file.write_text(json.dumps([
            {"tenantId": "tenant_new", "numberId": "num_009", "phoneNumber": "+14255550100", "active": True},
        ]))
        _bump_mtime(routing_file)

        assert resolver.resolve("+14255550100").tenant_id == "tenant_new"

    def test_deactivation_takes_effect_on_next_lookup(self, routing_file):
        resolver = TenantNumberResolver(FileRoutingSource(str(routing_file)))
        assert resolver.resolve("+14255550100") is not None

        routing_file.write_text(json.dumps([
            {"tenantId": "tenant_abc", "numberId": "num_001", "phoneNumber": "+14255550100", "active": False},
        ]))
        _bump_mtime(routing_file)

        assert resolver.resolve("+14255550100") is None

    def test_unchanged_version_does_not_reload(self):
        source = _CountingSource([
            {"tenantId": "t1", "numberId": "n1", "phoneNumber": "+14255550100", "active": True},
        ])
        resolver = TenantNumberResolver(source)
        for _ in range(5):
            assert resolver.resolve("+14255550100").tenant_id == "t1"
        assert source.loads == 1

    def test_reload_failure_keeps_previous_snapshot(self):
        source = _CountingSource([
            {"tenantId": "t1", "numberId": "n1", "phoneNumber": "+14255550100", "active": True},
        ])
        resolver = TenantNumberResolver(source)
        assert resolver.resolve("+14255550100").tenant_id == "t1"

        source.current_version = "v2"
        source.fail_load = True
        assert resolver.resolve("+14255550100").tenant_id == "t1"

        source.fail_load = False
        source.fail_version = True
        assert resolver.resolve("+14255550100").tenant_id == "t1"

    def test_failed_reload_is_retried_later(self):
        source = _CountingSource([
            {"tenantId": "t1", "numberId": "n1", "phoneNumber": "+14255550100", "active": True},
        ])
        resolver = TenantNumberResolver(source)
        resolver.refresh()

        source.records = [{"tenantId": "t2", "numberId": "n1", "phoneNumber": "+14255550100", "active": True}]
        source.current_version = "v2"
        source.fail_load = True
        assert resolver.refresh() is False

        source.fail_load = False
        assert resolver.refresh() is True
        assert resolver.resolve("+14255550100").tenant_id == "t2"

    def test_missing_file_serves_empty_table(self, tmp_path):
        resolver = TenantNumberResolver(FileRoutingSource(str(tmp_path / "missing.json")))
        assert resolver.resolve("+14255550100") is None

    def test_concurrent_lookups(self, routing_file):
        resolver = TenantNumberResolver(FileRoutingSource(str(routing_file)))
        results = []

        def worker():
            for _ in range(50):
                results.append(resolver.resolve("+14255550100"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # A lookup racing the first load may see the empty snapshot; never a partial one
        resolved = [r for r in results if r is not None]
        assert resolved
        assert all(r.tenant_id == "tenant_abc" for r in resolved)
