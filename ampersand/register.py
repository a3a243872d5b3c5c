"""Periodic registration of a node with a registration server."""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request
from collections.abc import Callable, Mapping

_LOG = logging.getLogger(__name__)

USER_AGENT = "asterisk-libcurl-agent/1.0"
REGISTER_INTERVAL_MS = 180 * 1000
FIRST_REGISTER_DELAY_MS = 5 * 1000
REQUEST_TIMEOUT_S = 15
# Only this much of the response is examined.
RESULT_AREA_SIZE = 128
SUCCESS_TEXT = "successfully registered"

# The port attribute must be the IAX port; a wrong value breaks
# registration even though the server still reports success.
_JSON_TEMPLATE = (
    '{"port": %u,"data": {"nodes": {"%s": {"node": "%s","passwd": "%s","remote": 0}}}}'
)

Transport = Callable[[str, bytes, Mapping[str, str], float], "tuple[int, bytes]"]


def registration_payload(node_number: str, password: str, iax_port: int) -> str:
    """Build the JSON body sent to the registration server."""
    return _JSON_TEMPLATE % (iax_port, node_number, node_number, password)


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _urllib_post(
    url: str, body: bytes, headers: Mapping[str, str], timeout: float
) -> tuple[int, bytes]:
    request = urllib.request.Request(url, data=body, headers=dict(headers), method="POST")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


class RegisterTask:
    """Registers a node with the registration server every few minutes."""

    def __init__(
        self,
        clock: Callable[[], int] = _monotonic_ms,
        transport: Transport = _urllib_post,
    ) -> None:
        self._clock = clock
        self._transport = transport
        self.reg_server_url = ""
        self.node_number = ""
        self._password = ""
        self.iax_port = 0
        self.reg_interval_ms = REGISTER_INTERVAL_MS
        self.next_register_ms = clock() + FIRST_REGISTER_DELAY_MS
        self.last_good_registration_ms = 0

    def configure(
        self, reg_server_url: str, node_number: str, password: str, iax_port: int
    ) -> None:
        """Set the server and the node's credentials."""
        self.reg_server_url = reg_server_url
        self.node_number = node_number
        self._password = password
        self.iax_port = iax_port

    def do_register(self) -> bool:
        """Send one registration request; True when the server accepts it."""
        body = registration_payload(self.node_number, self._password, self.iax_port)
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        try:
            status, content = self._transport(
                self.reg_server_url, body.encode(), headers, REQUEST_TIMEOUT_S
            )
        except (OSError, ValueError) as exc:
            _LOG.error("Registration failed (1) for %s: %s", self.node_number, exc)
            return False

        result = content[: RESULT_AREA_SIZE - 1].decode("utf-8", errors="replace")
        if status == 200 and SUCCESS_TEXT in result:
            _LOG.info("Successfully registered %s", self.node_number)
            self.last_good_registration_ms = self._clock()
            return True
        _LOG.error("Registration failed for %s", self.node_number)
        return False

    def ten_sec_tick(self) -> None:
        """Register when the interval has elapsed and a node is configured."""
        now = self._clock()
        if now >= self.next_register_ms:
            self.next_register_ms = now + self.reg_interval_ms
            if self.node_number:
                self.do_register()