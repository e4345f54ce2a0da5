import time
import logging
import threading
from buyer_leads_app.config.settings import RATE_LIMITS


class RateLimitConfig:
    def __init__(self, window_seconds, max_requests):
        self.window_seconds = float(window_seconds)
        self.max_requests = int(max_requests)

    @classmethod
    def named(cls, operation):
        c = RATE_LIMITS[operation]
        return cls(c["window_seconds"], c["max_requests"])


class RateLimitResult:
    def __init__(self, allowed, remaining, reset_time, limit):
        self.allowed = allowed
        self.remaining = remaining
        self.reset_time = reset_time
        self.limit = limit

    def headers(self):
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_time * 1000)),
        }


class CounterStore:
    """Holds {key: {"count": int, "reset_time": float}} entries.

    The in-memory store is per process; a shared store (e.g. Redis) can
    implement the same three methods for multi-process deployments.
    """

    def get(self, key):
        raise NotImplementedError

    def set(self, key, entry):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError


class InMemoryCounterStore(CounterStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._data = {}

    def get(self, key):
        with self._lock:
            entry = self._data.get(key)
            return dict(entry) if entry else None

    def set(self, key, entry):
        with self._lock:
            self._data[key] = dict(entry)

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)

    def clear(self):
        with self._lock:
            self._data.clear()


def make_key(operation, client_id):
    return "%s:%s" % (operation, client_id)


class RateLimiter:
    def __init__(self, store=None, clock=time.time):
        self.store = store or InMemoryCounterStore()
        self.clock = clock
        # one check at a time; store calls alone are not atomic together
        self._lock = threading.Lock()

    def check(self, key, config):
        with self._lock:
            return self._check(key, config)

    def _check(self, key, config):
        now = self.clock()
        entry = self.store.get(key)
        if entry and entry["reset_time"] < now:
            self.store.delete(key)
            entry = None
        if not entry:
            reset = now + config.window_seconds
            self.store.set(key, {"count": 1, "reset_time": reset})
            return RateLimitResult(True, config.max_requests - 1, reset, config.max_requests)
        if entry["count"] >= config.max_requests:
            logging.info("{\"event\":\"rate_limited\",\"key\":\"%s\"}" % key)
            return RateLimitResult(False, 0, entry["reset_time"], config.max_requests)
        entry["count"] += 1
        self.store.set(key, entry)
        return RateLimitResult(True, config.max_requests - entry["count"], entry["reset_time"], config.max_requests)
