"""维护操作限流：固定窗口计数，优先 Redis，不可用时回退到进程内缓存。"""

from dataclasses import dataclass
from threading import Lock
import time

from redis.exceptions import RedisError

from fc_api.core.config import get_settings
from fc_api.core.security import get_redis

_LOCAL_WINDOWS: dict[str, tuple[int, float]] = {}
_LOCAL_LOCK = Lock()


@dataclass(frozen=True)
class RateLimitDecision:
    """限流判定结果。"""

    allowed: bool
    # 当前窗口内已使用次数；由 hit 返回时含本次。
    count: int
    # 被拒绝时建议的重试等待秒数。
    retry_after_seconds: int


def _key(actor_key: str) -> str:
    return f"{get_settings().maintenance_rate_limit_prefix}{actor_key}"


def reset_local_windows() -> None:
    with _LOCAL_LOCK:
        _LOCAL_WINDOWS.clear()


def hit(actor_key: str) -> RateLimitDecision:
    """记录一次尝试并返回是否允许。"""
    settings = get_settings()
    limit = settings.maintenance_rate_limit_max_attempts
    window = settings.maintenance_rate_limit_window_seconds
    key = _key(actor_key)

    redis_client = get_redis()
    if redis_client is not None:
        try:
            pipe = redis_client.pipeline()
            pipe.incr(key)
            pipe.expire(key, window, nx=True)
            pipe.ttl(key)
            count, _, ttl = pipe.execute()
            retry_after = max(1, int(ttl)) if int(ttl) > 0 else window
            return RateLimitDecision(allowed=int(count) <= limit, count=int(count), retry_after_seconds=retry_after)
        except RedisError:
            pass

    now = time.monotonic()
    with _LOCAL_LOCK:
        count, started_at = _LOCAL_WINDOWS.get(key, (0, now))
        if now - started_at >= window:
            count, started_at = 0, now
        count += 1
        _LOCAL_WINDOWS[key] = (count, started_at)
    retry_after = max(1, int(window - (now - started_at)))
    return RateLimitDecision(allowed=count <= limit, count=count, retry_after_seconds=retry_after)


def peek(actor_key: str) -> RateLimitDecision:
    """只读查询当前窗口，不计数；``allowed`` 表示再记录一次是否仍在限额内。"""
    settings = get_settings()
    limit = settings.maintenance_rate_limit_max_attempts
    window = settings.maintenance_rate_limit_window_seconds
    key = _key(actor_key)

    redis_client = get_redis()
    if redis_client is not None:
        try:
            pipe = redis_client.pipeline()
            pipe.get(key)
            pipe.ttl(key)
            raw, ttl = pipe.execute()
            count = int(raw or 0)
            retry_after = max(1, int(ttl)) if int(ttl) > 0 else window
            return RateLimitDecision(allowed=count < limit, count=count, retry_after_seconds=retry_after)
        except RedisError:
            pass

    now = time.monotonic()
    with _LOCAL_LOCK:
        count, started_at = _LOCAL_WINDOWS.get(key, (0, now))
    if now - started_at >= window:
        count, started_at = 0, now
    retry_after = max(1, int(window - (now - started_at)))
    return RateLimitDecision(allowed=count < limit, count=count, retry_after_seconds=retry_after)
