#!/usr/bin/env python3
"""
pull.py - Master Unit List (MUL) fetcher that snapshots listings and detail pages to disk.

Default behavior:
  - Fetches the QuickList JSON for every --types id, one request per weight bucket
    (the server rejects oversized responses), and writes quicklist-<type>.json
  - Fetches /Unit/Details/<id> for every unique MUL id into details/<id>.html;
    pages already on disk are skipped unless --force is given
  - Sleeps --delay-ms (+/-30% jitter) between requests
  - Writes manifest.json with per-type counts and fetched/skipped totals

Retry policy (RetryPolicy): up to 3 retries; HTTP 429 waits for Retry-After
(capped at 60s, default 5s); 5xx and connection errors wait 2s, 5s, 15s;
any other non-2xx status fails at once.

Exit codes:
  0 success
  2 registry request failed after retries
  130 interrupted
"""

import os
import sys
import time
import json
import random
import logging
import argparse
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests
from tqdm import tqdm

from mul_quicklist import parse_quicklist, units_from_payload
from console_log import configure_logging, print_summary

log = logging.getLogger(__name__)

# Defaults
DEFAULT_BASE_URL = os.environ.get("MUL_BASE_URL", "https://masterunitlist.azurewebsites.net")
DEFAULT_TIMEOUT = 30
DEFAULT_DELAY_MS = 1000
DEFAULT_TYPES = [18, 19]
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# Tonnage ranges queried separately to stay under the server's response size limit
WEIGHT_BUCKETS = [
    (0, 25), (26, 35), (36, 45), (46, 55), (56, 65),
    (66, 75), (76, 85), (86, 100), (101, 200),
    (201, 999999),
]

JITTER_FRACTION = 0.3


class RegistryFetchError(RuntimeError):
    def __init__(self, message: str, url: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_schedule: Sequence[float] = (2, 5, 15)
    default_retry_after: float = 5
    max_retry_after: float = 60

    def backoff(self, attempt: int) -> float:
        idx = min(attempt, len(self.backoff_schedule) - 1)
        return self.backoff_schedule[idx]

    def retry_after(self, header: Optional[str]) -> float:
        """Seconds to wait after a 429, honoring a numeric Retry-After header."""
        try:
            wait = float(header.strip())
        except (AttributeError, ValueError):
            return self.default_retry_after
        return max(0.0, min(wait, self.max_retry_after))


DEFAULT_POLICY = RetryPolicy()


def is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status < 600


def fetch_with_policy(session: requests.Session, url: str, policy: RetryPolicy = DEFAULT_POLICY,
                      timeout: float = DEFAULT_TIMEOUT, sleep: Callable[[float], None] = time.sleep) -> str:
    """
    GET url and return the body text, retrying per policy.
    Makes at most policy.max_retries + 1 requests.
    """
    for attempt in range(policy.max_retries + 1):
        last_attempt = attempt == policy.max_retries
        try:
            resp = session.get(url, timeout=timeout)
        except requests.RequestException as exc:
            if last_attempt:
                raise RegistryFetchError(
                    f"request to {url} failed after {policy.max_retries} retries: {exc}", url=url
                ) from exc
            wait = policy.backoff(attempt)
            log.warning("Request error for %s (attempt %d), retrying in %ss: %s", url, attempt + 1, wait, exc)
            sleep(wait)
            continue

        status = resp.status_code
        if 200 <= status < 300:
            return resp.text

        if not is_retryable_status(status):
            raise RegistryFetchError(f"request to {url} failed: HTTP {status}", url=url, status=status)

        if last_attempt:
            raise RegistryFetchError(
                f"request to {url} failed after {policy.max_retries} retries: HTTP {status}",
                url=url, status=status,
            )

        if status == 429:
            wait = policy.retry_after(resp.headers.get("Retry-After"))
            log.warning("Rate limited on %s (attempt %d), waiting %ss", url, attempt + 1, wait)
        else:
            wait = policy.backoff(attempt)
            log.warning("HTTP %d from %s (attempt %d), retrying in %ss", status, url, attempt + 1, wait)
        sleep(wait)

    # range() above always returns or raises
    raise RegistryFetchError(f"request to {url} failed", url=url)


class MulClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, delay_ms: int = DEFAULT_DELAY_MS,
                 policy: RetryPolicy = DEFAULT_POLICY, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        self.base_url = base_url.rstrip("/")
        self.delay_ms = delay_ms
        self.policy = policy
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept-Encoding": "gzip, deflate",
        })
        self._sleep = sleep
        self._rng = rng or random.Random()

    def get(self, url: str) -> str:
        return fetch_with_policy(self.session, url, self.policy, self.timeout, self._sleep)

    def jittered_delay(self) -> float:
        """Configured delay in seconds with +/-30% jitter; 0 when delay is disabled."""
        if self.delay_ms <= 0:
            return 0.0
        spread = self.delay_ms * JITTER_FRACTION
        return (self.delay_ms + self._rng.uniform(-spread, spread)) / 1000.0

    def sleep_with_jitter(self):
        delay = self.jittered_delay()
        if delay > 0:
            self._sleep(delay)

    def fetch_quicklist(self, type_id: int) -> str:
        """All units of one MUL type across WEIGHT_BUCKETS, as a {"Units": [...]} JSON string."""
        units: List[dict] = []
        for min_tons, max_tons in WEIGHT_BUCKETS:
            url = f"{self.base_url}/Unit/QuickList?Types={type_id}&MinTons={min_tons}&MaxTons={max_tons}"
            body = self.get(url)
            try:
                payload = json.loads(body)
            except ValueError as e:
                raise RegistryFetchError(
                    f"invalid QuickList JSON for type={type_id} tons={min_tons}-{max_tons}: {e}", url=url
                ) from e
            bucket = units_from_payload(payload)
            if bucket is None:
                log.warning("Unexpected QuickList shape for type=%s tons=%s-%s", type_id, min_tons, max_tons)
                continue
            log.debug("type=%s tons=%s-%s: %d units", type_id, min_tons, max_tons, len(bucket))
            units.extend(bucket)
            self.sleep_with_jitter()
        return json.dumps({"Units": units}, ensure_ascii=False, indent=2)

    def fetch_detail(self, mul_id: int) -> str:
        return self.get(f"{self.base_url}/Unit/Details/{mul_id}")


def write_atomic(path: Path, text: str):
    """Write via a sibling temp file so an interrupted run never leaves a truncated page."""
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def run_fetch(output_dir: Path, client: MulClient, types: Sequence[int], force: bool = False,
              progress: bool = True) -> Dict:
    """
    Snapshot QuickLists and detail pages into output_dir and write manifest.json.
    Returns the manifest.
    """
    output_dir = Path(output_dir)
    details_dir = output_dir / "details"
    details_dir.mkdir(parents=True, exist_ok=True)

    quicklist_counts: Dict[str, int] = {}
    mul_ids = set()
    for type_id in types:
        log.info("Fetching QuickList for type %s", type_id)
        body = client.fetch_quicklist(type_id)
        write_atomic(output_dir / f"quicklist-{type_id}.json", body)
        units = parse_quicklist(body)
        quicklist_counts[str(type_id)] = len(units)
        mul_ids.update(u.id for u in units)

    # some units appear under several types
    all_ids = sorted(mul_ids)
    fetched = 0
    skipped = 0
    for mul_id in tqdm(all_ids, desc="detail pages", disable=not progress):
        path = details_dir / f"{mul_id}.html"
        if path.exists() and not force:
            skipped += 1
            continue
        html = client.fetch_detail(mul_id)
        write_atomic(path, html)
        fetched += 1
        client.sleep_with_jitter()

    manifest = {
        "fetched_at": datetime.now(timezone.utc).isoformat(),
        "base_url": client.base_url,
        "types": list(types),
        "quicklist_counts": quicklist_counts,
        "detail_pages_fetched": fetched,
        "detail_pages_skipped": skipped,
        "total_mul_ids": len(all_ids),
    }
    with open(output_dir / "manifest.json", "w", encoding="utf-8") as f:
        json.dump(manifest, f, ensure_ascii=False, indent=2)
    log.info("Fetch complete: %d fetched, %d skipped, manifest written to %s",
             fetched, skipped, output_dir / "manifest.json")
    return manifest


def main():
    parser = argparse.ArgumentParser(description="Snapshot Master Unit List QuickLists and detail pages to disk.")
    parser.add_argument("--out", default="mul-data", help="Output directory (default: mul-data)")
    parser.add_argument("--types", type=int, nargs="+", default=DEFAULT_TYPES, help=f"MUL unit type ids to fetch (default: {DEFAULT_TYPES})")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help=f"MUL base URL (default: env MUL_BASE_URL or {DEFAULT_BASE_URL})")
    parser.add_argument("--delay-ms", type=int, default=DEFAULT_DELAY_MS, help="Delay between requests in milliseconds, +/-30%% jitter")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Per-request timeout in seconds")
    parser.add_argument("--force", action="store_true", help="Re-fetch detail pages that already exist on disk")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)
    client = MulClient(base_url=args.base_url, delay_ms=args.delay_ms, timeout=args.timeout)

    try:
        manifest = run_fetch(Path(args.out), client, args.types, force=args.force, progress=not args.no_progress)
    except RegistryFetchError as e:
        log.error("%s", e)
        sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)

    print_summary("Fetch complete", {
        "total_mul_ids": manifest["total_mul_ids"],
        "detail_pages_fetched": manifest["detail_pages_fetched"],
        "detail_pages_skipped": manifest["detail_pages_skipped"],
        **{f"quicklist_{t}": c for t, c in manifest["quicklist_counts"].items()},
    })
    sys.exit(0)


if __name__ == "__main__":
    main()
