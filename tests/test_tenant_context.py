"""Tests for the per-operation tenant context."""

import asyncio
import dataclasses
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from storefront.tenant_context import (
    TenantContext,
    clear,
    get_current_tenant,
    set_current_tenant,
    tenant_scope,
)


class TestTenantContext:
    def test_unset_by_default(self):
        assert get_current_tenant() is None

    def test_set_and_clear(self):
        with tenant_scope(None):
            set_current_tenant("tenant1")
            assert get_current_tenant() == "tenant1"
            clear()
            assert get_current_tenant() is None

    def test_scope_restores_previous_value(self):
        with tenant_scope("tenant1"):
            with tenant_scope("tenant2"):
                assert get_current_tenant() == "tenant2"
            assert get_current_tenant() == "tenant1"
        assert get_current_tenant() is None

    def test_scope_clears_on_error(self):
        with pytest.raises(RuntimeError):
            with tenant_scope("tenant1"):
                raise RuntimeError("boom")
        assert get_current_tenant() is None

    def test_value_object_is_frozen(self):
        context = TenantContext("tenant1", "header")
        with pytest.raises(dataclasses.FrozenInstanceError):
            context.tenant_id = "tenant2"


class TestIsolationAcrossOperations:
    def test_threads_see_only_their_own_tenant(self):
        barrier = threading.Barrier(2)
        seen = {}

        def operation(tenant_id):
            with tenant_scope(tenant_id):
                barrier.wait(timeout=5)
                seen[tenant_id] = get_current_tenant()

        threads = [threading.Thread(target=operation, args=(t,)) for t in ("tenant1", "tenant2")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen == {"tenant1": "tenant1", "tenant2": "tenant2"}

    def test_reused_worker_thread_does_not_inherit_tenant(self):
        def failing_operation():
            with tenant_scope("tenant1"):
                raise ValueError("operation failed")

        with ThreadPoolExecutor(max_workers=1) as pool:
            with pytest.raises(ValueError):
                pool.submit(failing_operation).result()
            assert pool.submit(get_current_tenant).result() is None

    def test_asyncio_tasks_are_isolated(self):
        async def operation(tenant_id):
            with tenant_scope(tenant_id):
                await asyncio.sleep(0)
                return get_current_tenant()

        async def run_both():
            return await asyncio.gather(operation("tenant1"), operation("tenant2"))

        assert asyncio.run(run_both()) == ["tenant1", "tenant2"]
