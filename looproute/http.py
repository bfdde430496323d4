"""Google Maps Platform transport: retried JSON calls, per-API request budgets and counters.

Each API client owns one RequestBudget (the Places client one for lookups,
the Routes client one for distance checks) so a runaway search cannot spend
more than the run allows on either API. All clients share one RequestMetrics,
which ends up in result.json.
"""
from __future__ import annotations

import hashlib
import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from . import config

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class BudgetExceededError(RuntimeError):
    def __init__(self, api: str, limit: int) -> None:
        super().__init__(f"{api} request budget of {limit} exhausted")
        self.api = api
        self.limit = limit


def request_fingerprint(method: str, url: str, field_mask: str, body: Optional[Dict[str, Any]] = None) -> str:
    """Stable key for a request; identical Maps requests share one fingerprint."""
    payload = json.dumps(body or {}, sort_keys=True, separators=(",", ":"))
    raw = f"{method}|{url}|{field_mask}|{payload}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


@dataclass
class RequestMetrics:
    """Network calls and in-memory cache hits, keyed by API name."""

    network: Dict[str, int] = field(default_factory=dict)
    cache_hits: Dict[str, int] = field(default_factory=dict)

    def record_network(self, api: str) -> None:
        self.network[api] = self.network.get(api, 0) + 1

    def record_cache_hit(self, api: str) -> None:
        self.cache_hits[api] = self.cache_hits.get(api, 0) + 1

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {"network": dict(self.network), "cache_hits": dict(self.cache_hits)}


class RequestBudget:
    def __init__(self, api: str, limit: int, metrics: Optional[RequestMetrics] = None) -> None:
        if limit < 0:
            raise ValueError(f"{api} budget must not be negative")
        self.api = api
        self.limit = limit
        self.metrics = metrics
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def consume(self) -> None:
        if self.used >= self.limit:
            raise BudgetExceededError(self.api, self.limit)
        self.used += 1
        if self.metrics is not None:
            self.metrics.record_network(self.api)

    def record_cache_hit(self) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_hit(self.api)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = config.HTTP_RETRY_MAX
    backoff_base: float = config.HTTP_BACKOFF_BASE
    backoff_max: float = config.HTTP_BACKOFF_MAX

    def backoff(self, attempt: int) -> float:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        return base + random.uniform(0, self.backoff_base)

    def retry_after(self, resp: requests.Response) -> Optional[float]:
        header = resp.headers.get("Retry-After")
        if not header:
            return None
        try:
            delay = float(header)
        except ValueError:
            return None
        return max(0.0, min(delay, self.backoff_max))


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        retry: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.session = session or requests.Session()

    def _headers(self, field_mask: str) -> Dict[str, str]:
        return {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
            "Content-Type": "application/json",
        }

    def post_json(self, url: str, body: Dict[str, Any], field_mask: str) -> Dict[str, Any]:
        headers = self._headers(field_mask)
        payload = json.dumps(body)
        return self._send(
            url,
            lambda: self.session.post(url, data=payload, headers=headers, timeout=self.timeout),
        )

    def get_json(self, url: str, field_mask: str) -> Dict[str, Any]:
        headers = self._headers(field_mask)
        return self._send(url, lambda: self.session.get(url, headers=headers, timeout=self.timeout))

    def _send(self, url: str, send: Callable[[], requests.Response]) -> Dict[str, Any]:
        attempts = self.retry.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                resp = send()
            except requests.RequestException as exc:
                if attempt >= attempts:
                    raise
                logger.warning("%s failed: %s (attempt %s/%s)", url, exc, attempt, attempts)
                time.sleep(self.retry.backoff(attempt))
                continue

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    raise

            if resp.status_code not in RETRYABLE_STATUSES or attempt >= attempts:
                logger.error("HTTP %s from %s", resp.status_code, url)
                resp.raise_for_status()
                raise requests.HTTPError(f"HTTP {resp.status_code} from {url}", response=resp)

            logger.warning("HTTP %s from %s (attempt %s/%s)", resp.status_code, url, attempt, attempts)
            delay = self.retry.retry_after(resp)
            time.sleep(self.retry.backoff(attempt) if delay is None else delay)

        raise RuntimeError(f"{url}: no attempts made (max_attempts={attempts})")
