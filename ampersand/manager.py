"""A small TCP manager interface that accepts login and command requests.

Requests are blocks of "Name: value" lines ended by an empty line, in the
style of the Asterisk manager protocol.
"""

from __future__ import annotations

import logging
import socket
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum, auto

_LOG = logging.getLogger(__name__)

MAX_SESSIONS = 4
# Bytes of unprocessed input a session can hold.
BUF_CAPACITY = 128
# Longest name or value iter_values accepts.
FIELD_CAPACITY = 64
# Longest command text kept; anything beyond is cut off.
COMMAND_CAPACITY = 64
LISTEN_BACKLOG = 5

_TERMINATOR = b"\r\n\r\n"

LOGIN_RESPONSE = b"Response: Success\r\nMessage: Authentication accepted\r\n\r\n"
COMMAND_RESPONSE = (
    b"Response: Success\r\nMessage: Command output follows\r\nOutput:\r\n\r\n"
)


class ManagerParseError(ValueError):
    """Raised when a request block is not well formed."""


class CommandSink(ABC):
    """Receives the commands that manager clients ask to run."""

    @abstractmethod
    def execute(self, command: str) -> None:
        """Run one command."""


class _State(Enum):
    NAME = auto()
    AFTER_COLON = auto()
    VALUE = auto()
    AFTER_CR = auto()


def iter_values(text: str) -> Iterator[tuple[str, str]]:
    """Yield the (name, value) pairs of a request block in order.

    Spaces after the colon are skipped. The last value need not end with
    a line break. Raises ManagerParseError, after yielding the pairs that
    came before the fault, when a carriage return is not followed by a
    line feed or a name or value is longer than FIELD_CAPACITY.
    """
    state = _State.NAME
    name: list[str] = []
    value: list[str] = []

    def _append(target: list[str], ch: str, what: str) -> None:
        target.append(ch)
        if len(target) > FIELD_CAPACITY:
            raise ManagerParseError(f"{what} longer than {FIELD_CAPACITY} characters")

    for ch in text:
        if state is _State.NAME:
            if ch in "\r\n":
                continue
            if ch == ":":
                state = _State.AFTER_COLON
                value = []
            else:
                _append(name, ch, "name")
        elif state is _State.AFTER_COLON:
            if ch != " ":
                _append(value, ch, "value")
                state = _State.VALUE
        elif state is _State.VALUE:
            if ch == "\r":
                yield "".join(name), "".join(value)
                state = _State.AFTER_CR
            else:
                _append(value, ch, "value")
        elif ch == "\n":
            state = _State.NAME
            name = []
            value = []
        else:
            raise ManagerParseError("carriage return not followed by line feed")

    if state is _State.VALUE:
        yield "".join(name), "".join(value)


@dataclass
class Session:
    """One connected manager client and its pending input."""

    active: bool = False
    sock: socket.socket | None = None
    start_ms: int = 0
    buffer: bytearray = field(default_factory=bytearray)

    def reset(self) -> None:
        """Return the slot to its unused state."""
        self.active = False
        self.sock = None
        self.start_ms = 0
        self.buffer.clear()

    @property
    def space_available(self) -> int:
        return BUF_CAPACITY - len(self.buffer)

    def feed(self, data: bytes) -> int:
        """Append as much of data as fits; return the number of bytes taken."""
        taken = bytes(data[: self.space_available])
        self.buffer.extend(taken)
        return len(taken)

    def pop_command(self) -> str | None:
        """Remove and return the next complete request block, if there is one.

        The blank-line terminator is dropped and the text is cut to
        COMMAND_CAPACITY characters.
        """
        end = self.buffer.find(_TERMINATOR)
        if end < 0:
            return None
        command = bytes(self.buffer[:end])[:COMMAND_CAPACITY]
        del self.buffer[: end + len(_TERMINATOR)]
        return command.decode("latin-1")


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class ManagerTask:
    """Listens for manager clients and serves their requests without blocking."""

    def __init__(
        self,
        listen_port: int,
        clock: Callable[[], int] = _monotonic_ms,
        sink: CommandSink | None = None,
        host: str = "",
    ) -> None:
        self._clock = clock
        self.sink = sink
        self.sessions = [Session() for _ in range(MAX_SESSIONS)]
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, listen_port))
            sock.setblocking(False)
            sock.listen(LISTEN_BACKLOG)
        except OSError:
            _LOG.error("Unable to set up manager on port %d", listen_port)
            sock.close()
            raise
        self._sock = sock

    def __enter__(self) -> ManagerTask:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def port(self) -> int:
        """The port actually being listened on."""
        return self._sock.getsockname()[1]

    @property
    def active_session_count(self) -> int:
        return sum(1 for s in self.sessions if s.active)

    def fileno_list(self) -> list[int]:
        """File descriptors to watch for input: the listener and each client."""
        fds = [self._sock.fileno()]
        fds.extend(s.sock.fileno() for s in self.sessions if s.active and s.sock)
        return fds

    def run(self) -> bool:
        """Accept clients, read input and answer complete requests.

        Returns True when anything was done.
        """
        did_work = self._accept()

        for index, session in enumerate(self.sessions):
            if session.active and self._read(index, session):
                did_work = True

        for session in self.sessions:
            while session.active:
                command = session.pop_command()
                if command is None:
                    break
                did_work = True
                self.handle_command(session, command)
        return did_work

    def _accept(self) -> bool:
        try:
            client, _ = self._sock.accept()
        except (BlockingIOError, InterruptedError):
            return False
        client.setblocking(False)
        for index, session in enumerate(self.sessions):
            if not session.active:
                session.reset()
                session.active = True
                session.sock = client
                session.start_ms = self._clock()
                _LOG.info("New manager session %d", index)
                return True
        _LOG.info("Max manager sessions exceeded")
        client.close()
        return True

    def _read(self, index: int, session: Session) -> bool:
        assert session.sock is not None
        try:
            data = session.sock.recv(session.space_available)
        except (BlockingIOError, InterruptedError):
            return False
        except OSError:
            data = b""
        if not data:
            _LOG.info("Session %d dropped", index)
            self._drop(session)
            return True
        session.feed(data)
        return True

    @staticmethod
    def _drop(session: Session) -> None:
        if session.sock is not None:
            session.sock.close()
        session.reset()

    def handle_command(self, session: Session, command: str) -> bytes | None:
        """Act on one request block and send the reply; return the reply sent."""
        action = ""
        username = ""
        argument = ""
        try:
            for name, value in iter_values(command):
                if name == "ACTION":
                    action = value
                elif action == "Login":
                    if name == "Username":
                        username = value
                    elif name == "Secret":
                        argument = value
                elif action == "COMMAND" and name == "COMMAND":
                    argument = value
        except ManagerParseError as exc:
            _LOG.debug("Malformed manager request: %s", exc)

        if action == "Login":
            _LOG.info("Login %s", username)
            response = LOGIN_RESPONSE
        elif action == "COMMAND":
            if self.sink is not None:
                self.sink.execute(argument)
            response = COMMAND_RESPONSE
        else:
            return None

        if session.sock is not None:
            try:
                session.sock.send(response)
            except OSError as exc:
                _LOG.error("Manager send failed: %s", exc)
        return response

    def close(self) -> None:
        """Disconnect every client and stop listening."""
        for session in self.sessions:
            if session.active:
                self._drop(session)
        self._sock.close()