"""
数据源速率限制器

每个数据源一个冷却时间（两次调用之间的最小间隔），由应用层持有一个 RateLimiter 实例
并传给各数据源客户端。支持按 scope（会话/租户）隔离状态。

两种策略：
- FAIL_FAST：冷却期内直接抛出 RateLimitedError，由调用方决定重试或换数据源（arXiv）
- BLOCKING：冷却期内等待剩余时间后继续（Semantic Scholar、J-STAGE）
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Hashable, Optional, Set, Tuple

from .errors import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimitPolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    BLOCKING = "blocking"


@dataclass
class RateDecision:
    """一次调用是否可以立即进行，以及还需等待的毫秒数"""
    allowed: bool
    wait_millis: int


def _now_millis() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    按 (数据源, scope) 记录最近一次成功调用的时间戳。

    参数:
        clock: 返回当前毫秒时间戳的函数，默认使用系统时间
        sleep: 按秒等待的函数，默认 time.sleep
    """

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self._clock = clock or _now_millis
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._rules: Dict[str, Tuple[int, RateLimitPolicy]] = {}
        self._last_call: Dict[Tuple[str, Optional[Hashable]], int] = {}
        # FAIL_FAST 数据源已放行、尚未 record_call/release 的调用
        self._in_flight: Set[Tuple[str, Optional[Hashable]]] = set()

    def register(self, source: str, cooldown_millis: int, policy: RateLimitPolicy):
        """为数据源登记冷却时间和策略"""
        self._rules[source] = (int(cooldown_millis), RateLimitPolicy(policy))

    def cooldown_for(self, source: str) -> int:
        rule = self._rules.get(source)
        return rule[0] if rule else 0

    def policy_for(self, source: str) -> Optional[RateLimitPolicy]:
        rule = self._rules.get(source)
        return rule[1] if rule else None

    def _decide(self, source: str, scope: Optional[Hashable], now: int) -> RateDecision:
        cooldown = self.cooldown_for(source)
        if (source, scope) in self._in_flight:
            return RateDecision(allowed=False, wait_millis=max(cooldown, 1))
        last = self._last_call.get((source, scope))
        if cooldown <= 0 or last is None:
            return RateDecision(allowed=True, wait_millis=0)
        elapsed = now - last
        if elapsed >= cooldown:
            return RateDecision(allowed=True, wait_millis=0)
        return RateDecision(allowed=False, wait_millis=cooldown - elapsed)

    def can_call_now(self, source: str, scope: Optional[Hashable] = None) -> RateDecision:
        """检查当前是否允许调用该数据源"""
        with self._lock:
            return self._decide(source, scope, self._clock())

    def record_call(self, source: str, now_millis: Optional[int] = None, scope: Optional[Hashable] = None):
        """记录一次成功调用，并结束该数据源的在途标记"""
        with self._lock:
            self._last_call[(source, scope)] = self._clock() if now_millis is None else int(now_millis)
            self._in_flight.discard((source, scope))

    def release(self, source: str, scope: Optional[Hashable] = None):
        """
        结束在途标记但不记录调用时间。

        请求失败时调用，失败的请求不开始冷却；已经 record_call 过的调用再 release 不产生影响。
        """
        with self._lock:
            self._in_flight.discard((source, scope))

    def acquire(self, source: str, scope: Optional[Hashable] = None) -> int:
        """
        按数据源的策略获取调用许可。

        FAIL_FAST 数据源获得许可后处于在途状态，直到 record_call() 或 release()；
        在途期间的其他调用者同样收到 RateLimitedError（retry_after_millis 为完整冷却时间）。

        参数:
            source: 数据源名称
            scope: 会话/租户标识，None 表示进程级共享

        返回:
            int: 实际等待的毫秒数（FAIL_FAST 与未登记的数据源总是 0）

        异常:
            RateLimitedError: FAIL_FAST 数据源的冷却时间尚未结束，或已有调用在途
        """
        policy = self.policy_for(source)
        if policy is None:
            return 0

        with self._lock:
            now = self._clock()
            decision = self._decide(source, scope, now)

            if policy is RateLimitPolicy.FAIL_FAST:
                if not decision.allowed:
                    seconds = (decision.wait_millis + 999) // 1000
                    raise RateLimitedError(
                        f"{source} API cooldown active. Please wait {seconds} seconds before next search.",
                        retry_after_millis=decision.wait_millis,
                        source=source,
                    )
                self._in_flight.add((source, scope))
                return 0

            if decision.allowed:
                return 0

            # 先占住下一个时间槽，并发调用者会依次顺延一个冷却周期
            self._last_call[(source, scope)] = now + decision.wait_millis

        logger.info(f"[{source}] ⏳ 速率限制，等待 {decision.wait_millis}ms...")
        self._sleep(decision.wait_millis / 1000)
        return decision.wait_millis

    def reset(self):
        """清空所有时间戳和在途标记"""
        with self._lock:
            self._last_call.clear()
            self._in_flight.clear()
