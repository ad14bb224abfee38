"""
响应缓存测试（MemoryStore + ResponseCacheGateway）

使用可控时钟验证 TTL 边界，不依赖真实时间。
"""

import json

import pytest

from cache import (
    COLLECTIONS_POLICY,
    IMAGE_POLICY,
    CachePolicy,
    MemoryStore,
    ResponseCacheGateway,
)
from conftest import FakeClock


# ============================================
# 1. MemoryStore 测试
# ============================================

class TestMemoryStore:
    """内存键值存储测试"""

    def test_ttl_boundary(self):
        """测试：t-ε 时仍存在，t+ε 时已过期"""
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("k", "v", ttl=300)

        clock.advance(299.9)
        assert store.get("k") == "v"

        clock.advance(0.2)
        assert store.get("k") is None

    def test_immutable_entry_never_expires(self):
        """测试：ttl=None 的条目永不过期"""
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("img", b"bytes", ttl=None)

        clock.advance(10 * 365 * 24 * 3600)
        assert store.get("img") == b"bytes"

    def test_put_replaces_entry(self):
        """测试：写入会整体替换旧值并重置 TTL"""
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        store.put("k", {"a": 1}, ttl=10)
        clock.advance(8)
        store.put("k", {"b": 2}, ttl=10)
        clock.advance(8)

        assert store.get("k") == {"b": 2}

    def test_lru_eviction(self):
        """测试：超过上限时淘汰最久未使用的条目"""
        store = MemoryStore(max_entries=2)
        store.put("a", 1)
        store.put("b", 2)
        store.get("a")          # a 变为最近使用
        store.put("c", 3)

        assert store.get("a") == 1
        assert store.get("b") is None
        assert store.get("c") == 3

    def test_expired_entries_evicted_before_live_ones(self):
        """测试：容量不足时优先清理过期条目"""
        clock = FakeClock()
        store = MemoryStore(max_entries=2, clock=clock)
        store.put("live", 1, ttl=None)
        store.put("stale", 2, ttl=5)
        clock.advance(10)
        store.put("new", 3, ttl=None)

        assert store.get("live") == 1
        assert store.get("new") == 3
        assert len(store) == 2

    def test_stats_track_hits_and_misses(self):
        """测试：统计命中率"""
        store = MemoryStore()
        store.put("k", 1)
        store.get("k")
        store.get("missing")

        stats = store.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_byte_bound_evicts_least_recently_used(self):
        """测试：按总字节数限制时淘汰最久未使用的条目"""
        store = MemoryStore(max_bytes=10, sizer=len)
        store.put("a", b"aaaa")
        store.put("b", b"bbbb")
        store.get("a")
        store.put("c", b"cccc")

        assert store.get("a") == b"aaaa"
        assert store.get("b") is None
        assert store.stats()["total_bytes"] == 8

    def test_oversize_value_is_not_stored(self):
        """测试：单个值超过字节上限时不缓存，也不挤掉已有条目"""
        store = MemoryStore(max_bytes=10, sizer=len)
        store.put("small", b"ok")
        store.put("huge", b"x" * 11)

        assert store.get("huge") is None
        assert store.get("small") == b"ok"
        assert store.stats()["skipped_oversize"] == 1

    def test_replacing_entry_updates_byte_total(self):
        """测试：覆盖写入时字节计数不重复累计"""
        store = MemoryStore(max_bytes=10, sizer=len)
        store.put("k", b"123456")
        store.put("k", b"1234567")

        assert store.stats()["total_bytes"] == 7
        assert store.get("k") == b"1234567"

    def test_max_bytes_requires_sizer(self):
        with pytest.raises(ValueError):
            MemoryStore(max_bytes=10)


# ============================================
# 2. ResponseCacheGateway 测试
# ============================================

class TestGateway:
    """读穿透缓存网关测试"""

    @pytest.mark.asyncio
    async def test_miss_then_hit_is_byte_identical(self):
        """测试：TTL 内第二次读取命中缓存，内容逐字节一致"""
        gateway = ResponseCacheGateway(MemoryStore())
        calls = []

        async def compute():
            calls.append(1)
            return json.dumps([{"id": "p1", "title": "Kyoto"}])

        first = await gateway.read_through("collections:all:v2", COLLECTIONS_POLICY, compute)
        second = await gateway.read_through("collections:all:v2", COLLECTIONS_POLICY, compute)

        assert first.hit is False and first.status == "MISS"
        assert second.hit is True and second.status == "HIT"
        assert second.value == first.value
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_recomputed(self):
        """测试：过期后重新计算"""
        clock = FakeClock()
        gateway = ResponseCacheGateway(MemoryStore(clock=clock))
        values = iter(["v1", "v2"])

        async def compute():
            return next(values)

        policy = CachePolicy("short", 60)
        await gateway.read_through("k", policy, compute)
        clock.advance(61)
        result = await gateway.read_through("k", policy, compute)

        assert result.hit is False
        assert result.value == "v2"

    @pytest.mark.asyncio
    async def test_compute_failure_is_not_cached(self):
        """测试：计算失败时异常向上传播，且不写入缓存"""
        store = MemoryStore()
        gateway = ResponseCacheGateway(store)

        async def compute():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            await gateway.read_through("k", COLLECTIONS_POLICY, compute)
        assert store.get("k") is None

    def test_policy_cache_control(self):
        """测试：策略对应的 Cache-Control 头"""
        assert COLLECTIONS_POLICY.cache_control == "public, max-age=300"
        assert "immutable" in IMAGE_POLICY.cache_control
        assert IMAGE_POLICY.ttl_seconds is None
