"""Periodic reporting of node statistics to a statistics server."""

from __future__ import annotations

import http.client
import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

_LOG = logging.getLogger(__name__)

REPORT_INTERVAL_MS = 180 * 1000
REQUEST_TIMEOUT_S = 30
# Only this much of the response is examined.
RESULT_AREA_SIZE = 128
# Longest report URL; longer ones are cut off.
URL_CAPACITY = 255
SUCCESS_TEXT = "ok"

_QUERY_TEMPLATE = (
    "%s?node=%s&time=%d&seqno=%u&nodes=&apprptvers=0.0.0&apprptuptime=109"
    "&totalkerchunks=0&totalkeyups=0&totaltxtime=0&timeouts=0"
    "&totalexecdcommands=0&keyed=0&keytime=0"
)

Transport = Callable[[str, float], "tuple[int, bytes]"]


def stats_url(url: str, node_number: str, timestamp: int, seqno: int) -> str:
    """Build the report URL for one statistics update."""
    return (_QUERY_TEMPLATE % (url, node_number, int(timestamp), seqno))[:URL_CAPACITY]


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _urllib_get(url: str, timeout: float) -> tuple[int, bytes]:
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


class StatsTask:
    """Sends a statistics report every few minutes without blocking the caller.

    The request runs in a worker thread; run() collects its result.
    """

    def __init__(
        self,
        clock: Callable[[], int] = _monotonic_ms,
        transport: Transport = _urllib_get,
        time_source: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._transport = transport
        self._time_source = time_source
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._future: Future[tuple[int, bytes]] | None = None
        self.url = ""
        self.node_number = ""
        self.interval_ms = REPORT_INTERVAL_MS
        self.last_attempt_ms = 0
        self.last_success_ms = 0
        self._seq_counter = 1

    def __enter__(self) -> StatsTask:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def running(self) -> bool:
        """True while a report is in flight."""
        return self._future is not None

    def configure(self, url: str, node_number: str) -> None:
        """Set the server address and the node being reported."""
        self.url = url
        self.node_number = node_number

    def ten_sec_tick(self) -> None:
        """Start a report when the interval has passed since the last attempt."""
        now = self._clock()
        if now > self.last_attempt_ms + self.interval_ms:
            self.last_attempt_ms = now
            self._start()

    def _start(self) -> None:
        report = stats_url(
            self.url, self.node_number, int(self._time_source()), self._seq_counter
        )
        self._seq_counter += 1
        _LOG.info("Stats URL: %s", report)
        self._future = self._executor.submit(self._transport, report, REQUEST_TIMEOUT_S)

    def run(self) -> bool:
        """Collect a finished report; True when the task changed state."""
        future = self._future
        if future is None or not future.done():
            return False
        self._future = None
        try:
            status, content = future.result()
        except (OSError, ValueError, http.client.HTTPException) as exc:
            _LOG.error("Stats request failed: %s", exc)
            return True
        result = content[: RESULT_AREA_SIZE - 1].decode("utf-8", errors="replace")
        if status == 200 and SUCCESS_TEXT in result:
            _LOG.info("Stats success")
            self.last_success_ms = self._clock()
        else:
            _LOG.info("Stats failed")
        return True

    def close(self) -> None:
        """Stop the worker thread, abandoning any report in flight."""
        self._future = None
        self._executor.shutdown(wait=False)