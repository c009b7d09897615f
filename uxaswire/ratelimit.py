"""
uxaswire Rate Limiter — Throttling for envelope traffic.

Outbound publishes draw from a single allowance. Inbound envelopes are
throttled per sender, where the sender is the group/entity/service triple
carried in the attribute block. Those fields arrive straight off the wire,
so the sender table is bounded: senders quiet for longer than
`idle_seconds` are forgotten, and beyond `max_senders` the least recently
heard sender is evicted.
"""

import logging
import threading
import time
from collections import OrderedDict

log = logging.getLogger("uxaswire.ratelimit")


def sender_key(envelope) -> str:
    """Provenance of an envelope as group/entity/service."""
    attrs = envelope.attributes
    return "/".join((attrs.sender_group_text, attrs.sender_entity_id_text,
                     attrs.sender_service_id_text))


class TokenBucket:
    """Allowance of `rate` envelopes per second, saving up to `burst`.

    Not locked; RateLimiter serializes access.
    """

    def __init__(self, rate: float, burst: int, now: float):
        self.rate = rate
        self.burst = burst
        self.tokens = float(burst)
        self.last_seen = now

    def take(self, now: float) -> bool:
        self.tokens = min(self.burst, self.tokens + (now - self.last_seen) * self.rate)
        self.last_seen = now
        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False


class RateLimiter:
    """Publish and per-sender inbound limits for an EnvelopeClient."""

    def __init__(self, publish_rate: float = 50.0, publish_burst: int = 100,
                 inbound_rate: float = 100.0, inbound_burst: int = 200,
                 max_senders: int = 1024, idle_seconds: float = 300.0,
                 clock=time.monotonic):
        self.publish_rate = publish_rate
        self.inbound_rate = inbound_rate
        self.inbound_burst = inbound_burst
        self.max_senders = max_senders
        self.idle_seconds = idle_seconds
        self._clock = clock

        self._publish = TokenBucket(publish_rate, publish_burst, clock())
        self._senders = OrderedDict()
        self._lock = threading.Lock()

        self.counts = {
            "publish_allowed": 0, "publish_denied": 0,
            "inbound_allowed": 0, "inbound_denied": 0,
            "senders_evicted": 0,
        }

    def check_publish(self) -> bool:
        """Spend one publish token. Returns False when rate limited."""
        with self._lock:
            allowed = self._publish.take(self._clock())
            self.counts["publish_allowed" if allowed else "publish_denied"] += 1
        if not allowed:
            log.warning(f"🚫 Publish rate limited ({self.publish_rate}/s)")
        return allowed

    def check_inbound(self, envelope) -> bool:
        """Spend one token from the envelope sender's bucket."""
        sender = sender_key(envelope)
        with self._lock:
            now = self._clock()
            self._forget_idle(now)

            bucket = self._senders.pop(sender, None)
            if bucket is None:
                bucket = TokenBucket(self.inbound_rate, self.inbound_burst, now)
            allowed = bucket.take(now)
            self._senders[sender] = bucket

            while len(self._senders) > self.max_senders:
                self._senders.popitem(last=False)
                self.counts["senders_evicted"] += 1

            self.counts["inbound_allowed" if allowed else "inbound_denied"] += 1
        if not allowed:
            log.warning(f"🚫 Inbound rate limited from {sender}")
        return allowed

    def _forget_idle(self, now: float):
        # Oldest first, so stop at the first sender still active
        while self._senders:
            sender, bucket = next(iter(self._senders.items()))
            if now - bucket.last_seen <= self.idle_seconds:
                break
            del self._senders[sender]
            self.counts["senders_evicted"] += 1

    def stats(self) -> dict:
        with self._lock:
            return dict(self.counts, publish_rate=self.publish_rate,
                        inbound_rate=self.inbound_rate,
                        tracked_senders=len(self._senders))


_default = None


def get_default() -> RateLimiter:
    """Process-wide limiter shared by clients that are not given one."""
    global _default
    if _default is None:
        _default = RateLimiter()
    return _default
