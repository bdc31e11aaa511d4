# -*- test-case-name: fingerd.test.test_protocol -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
The Finger User Information Protocol (RFC 1288), server side.

Only single user look-ups are supported.  A connection carries exactly one
query line terminated by CR LF; the server answers with the user's record and
closes the connection.  The C{/W} (verbose) token is accepted but ignored.
"""

from __future__ import annotations

from typing import Callable, Optional

from constantly import NamedConstant, Names

from twisted.internet import defer, protocol, threads
from twisted.internet.error import ConnectionDone
from twisted.logger import Logger, LogLevel
from twisted.protocols import policies
from twisted.python.failure import Failure

from fingerd.store import USER_NOT_FOUND, UserStore

__all__ = [
    "TERMINATOR",
    "VERBOSE_MARKER",
    "NO_QUERY_ERROR",
    "SessionState",
    "InvalidTransition",
    "normalizeQuery",
    "FingerProtocol",
    "FingerFactory",
]

TERMINATOR = b"\r\n"
VERBOSE_MARKER = "/W"
NO_QUERY_ERROR = "[error]\r\nonly single user look-up is supported at the moment."


class SessionState(Names):
    """
    The states a L{FingerProtocol} moves through during its one
    request/response cycle.
    """

    AWAITING_QUERY = NamedConstant()
    RESPONDING = NamedConstant()
    CLOSED = NamedConstant()


_TRANSITIONS = {
    SessionState.AWAITING_QUERY: {SessionState.RESPONDING, SessionState.CLOSED},
    SessionState.RESPONDING: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class InvalidTransition(Exception):
    """
    A L{FingerProtocol} was asked to move between two states which are not
    connected.
    """


def normalizeQuery(query: str) -> str:
    """
    Reduce a received query line to the username it asks about.

    Every C{/W} token is removed, repeatedly, so that removing one cannot
    form another; then surrounding whitespace, including the line
    terminator, is stripped.  Applying this to its own result changes
    nothing.

    @param query: The decoded query line.

    @return: The username, possibly empty.
    """
    # Until none is left: "//WW" loses both markers, not just one.
    while VERBOSE_MARKER in query:
        query = query.replace(VERBOSE_MARKER, "")
    return query.strip()


class FingerProtocol(protocol.Protocol, policies.TimeoutMixin):
    """
    One finger session: accumulate a query line, look the user up, write the
    answer and close.

    Bytes are buffered until the buffer ends with L{TERMINATOR}; a terminator
    split across two reads is therefore handled the same as one arriving
    whole.  Once the query is complete the transport is paused and anything
    else the peer sends is ignored.

    @ivar state: The current L{SessionState}.

    @ivar _buffer: Bytes received so far while awaiting the query.

    @ivar factory: The L{FingerFactory} which built this protocol; it holds the
        configuration shared by all sessions.
    """

    _log = Logger()

    state = SessionState.AWAITING_QUERY
    _buffer = b""

    def _transition(self, newState: NamedConstant) -> None:
        if newState not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.name} -> {newState.name}")
        self.state = newState

    def _peer(self) -> object:
        return self.transport.getPeer()

    def connectionMade(self) -> None:
        self._buffer = b""
        self.setTimeout(self.factory.timeout)

    def dataReceived(self, data: bytes) -> None:
        if self.state is not SessionState.AWAITING_QUERY:
            return
        self.resetTimeout()
        self._buffer += data
        if self.factory.verbose:
            self._log.info("Read complete ({count} bytes)", count=len(data))

        if len(self._buffer) > self.factory.maxQueryLength:
            self._log.warn(
                "Query from {peer} is longer than {limit} bytes; "
                "closing connection",
                peer=self._peer(),
                limit=self.factory.maxQueryLength,
            )
            self._abandon()
        elif self._buffer.endswith(TERMINATOR):
            query, self._buffer = self._buffer, b""
            self._queryReceived(query)

    def _queryReceived(self, query: bytes) -> None:
        """
        A complete query line arrived: stop reading and start looking up the
        answer.
        """
        self._transition(SessionState.RESPONDING)
        self.setTimeout(None)
        self.transport.pauseProducing()

        try:
            received = query.decode("utf-8")
        except UnicodeDecodeError:
            self._log.warn(
                "Query from {peer} is not valid UTF-8: {query!r}",
                peer=self._peer(),
                query=query,
            )
            d = defer.succeed(USER_NOT_FOUND)
        else:
            username = normalizeQuery(received)
            if self.factory.verbose:
                self._log.info(
                    "Using tidied value {username!r} from received value "
                    "{received!r}",
                    username=username,
                    received=received,
                )
            if not username:
                d = defer.succeed(NO_QUERY_ERROR)
            else:
                d = self.factory.getUser(username)

        d.addCallbacks(self._respond, self._lookupFailed)

    def _respond(self, answer: str) -> None:
        """
        Write C{answer} and close the connection once it has been sent.
        """
        if self.state is not SessionState.RESPONDING:
            return
        self.transport.write(answer.encode("utf-8") + TERMINATOR)
        if self.factory.verbose:
            self._log.info("Closing connection")
        self.transport.loseConnection()

    def _lookupFailed(self, reason: Failure) -> None:
        self._log.failure(
            "Looking up a user for {peer} failed",
            reason,
            level=LogLevel.error,
            peer=self._peer(),
        )
        if self.state is SessionState.RESPONDING:
            self._abandon()

    def _abandon(self) -> None:
        """
        Close the connection without answering.
        """
        self._transition(SessionState.CLOSED)
        self._buffer = b""
        self.setTimeout(None)
        self.transport.loseConnection()

    def timeoutConnection(self) -> None:
        self._log.warn(
            "No complete query from {peer} after {timeout} seconds; "
            "closing connection",
            peer=self._peer(),
            timeout=self.timeOut,
        )
        self._abandon()

    def connectionLost(self, reason: Failure = protocol.connectionDone) -> None:
        self.setTimeout(None)
        self._buffer = b""
        if self.state is SessionState.CLOSED:
            return
        if not reason.check(ConnectionDone):
            self._log.failure(
                "Connection with {peer} failed",
                reason,
                level=LogLevel.error,
                peer=self._peer(),
            )
        self._transition(SessionState.CLOSED)


class FingerFactory(protocol.ServerFactory):
    """
    Build a L{FingerProtocol} for each connection and answer its look-ups.

    Everything here is read-only once the factory is built, so all sessions
    may share it.

    @ivar store: The L{UserStore} records come from.

    @ivar verbose: Log diagnostics for every session.

    @ivar maxQueryLength: The most bytes a session buffers while waiting for
        the end of the query line.

    @ivar timeout: Seconds a session may wait for its query line, or L{None}
        to wait indefinitely.

    @ivar _deferToThread: Runs a blocking call off the reactor thread and
        returns a L{Deferred} of its result.
    """

    protocol = FingerProtocol
    noisy = False

    maxQueryLength = 16384

    _deferToThread: Callable[..., defer.Deferred[str]] = staticmethod(
        threads.deferToThread
    )

    def __init__(
        self,
        store: UserStore,
        verbose: bool = False,
        maxQueryLength: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.verbose = verbose
        if maxQueryLength is not None:
            self.maxQueryLength = maxQueryLength
        self.timeout = timeout

    def getUser(self, username: str) -> defer.Deferred[str]:
        """
        Look C{username} up without blocking the reactor.

        @return: A L{Deferred} firing with the record text or
            L{USER_NOT_FOUND}.
        """
        return self._deferToThread(self.store.lookup, username)
