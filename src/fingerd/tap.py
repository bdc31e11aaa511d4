# -*- test-case-name: fingerd.test.test_tap -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Support for creating a finger server with twistd.
"""

import os

from twisted.application import strports
from twisted.internet import endpoints
from twisted.logger import Logger
from twisted.python import usage

from fingerd.protocol import FingerFactory
from fingerd.store import UserStore

_log = Logger()

BACKLOG = 256


def _positive(kind):
    """
    Make a coercion function for an option which must be a positive number
    of type C{kind}.
    """

    def coerce(value):
        try:
            number = kind(value)
        except ValueError:
            raise usage.UsageError(f"{value!r} is not a number")
        if number <= 0:
            raise usage.UsageError(f"{value!r} is not a positive number")
        return number

    coerce.coerceDoc = "Must be a positive number."
    return coerce


class Options(usage.Options):
    """
    Command-line options for the finger server.

    After parsing, C{self["user-directory"]} is an existing directory with
    C{~} expanded and any trailing slash removed, and C{self["listen"]} is
    an endpoint description to listen on.
    """

    synopsis = "[options]"
    longdesc = (
        "A finger (RFC 1288) server.  Each user's record is read from "
        "<user-directory>/<username>.txt; only single user look-ups are "
        "supported."
    )

    optFlags = [
        ["verbose", "v", "Log diagnostics for every connection."],
    ]

    optParameters = [
        ["port", "p", 79, "The port to listen on.", usage.portCoerce],
        ["host", "H", "127.0.0.1", "The address to listen on."],
        [
            "user-directory",
            "d",
            "/tmp",
            "The directory where user text files are stored.",
        ],
        [
            "listen",
            "l",
            None,
            "An endpoint description to listen on, for example "
            "unix:/var/run/finger.sock.  Overrides --port and --host.",
        ],
        [
            "max-query-length",
            None,
            FingerFactory.maxQueryLength,
            "The longest query line, in bytes, to wait for.",
            _positive(int),
        ],
        [
            "timeout",
            "t",
            None,
            "Seconds to wait for a query line before hanging up.",
            _positive(float),
        ],
        [
            "threads",
            None,
            os.cpu_count() or 1,
            "The most threads to read user files with.",
            _positive(int),
        ],
    ]

    compData = usage.Completions(
        optActions={
            "user-directory": usage.CompleteDirs(),
            "host": usage.CompleteHostnames(),
        }
    )

    def postOptions(self):
        """
        Validate the user directory and settle on an endpoint description.

        @raise usage.UsageError: If the user directory does not exist.
        """
        directory = os.path.expanduser(self["user-directory"])
        if len(directory) > 1:
            directory = directory.rstrip("/") or "/"
        if not os.path.isdir(directory):
            raise usage.UsageError(f"invalid user directory: {directory}")
        self["user-directory"] = directory

        if self["listen"] is None:
            self["listen"] = "tcp:port={}:interface={}:backlog={}".format(
                self["port"],
                endpoints.quoteStringArgument(self["host"]),
                BACKLOG,
            )


def makeFactory(config, reactor=None):
    """
    Build the protocol factory described by C{config} and size the reactor
    thread pool that user files are read in.

    @param config: A parsed L{Options}.

    @rtype: L{FingerFactory}
    """
    if reactor is None:
        from twisted.internet import reactor
    reactor.suggestThreadPoolSize(config["threads"])

    _log.info(
        "Serving finger from {directory} (verbose: {verbose})",
        directory=config["user-directory"],
        verbose=config["verbose"],
    )
    return FingerFactory(
        UserStore(config["user-directory"], verbose=config["verbose"]),
        verbose=config["verbose"],
        maxQueryLength=config["max-query-length"],
        timeout=config["timeout"],
    )


def makeService(config):
    """
    Build the listening service described by C{config}, for twistd.

    Failure to listen is raised from the service's C{startService} rather
    than only being logged.

    @param config: A parsed L{Options}.

    @rtype: L{twisted.application.service.IService}
    """
    factory = makeFactory(config)
    _log.info("Listening on {listen}", listen=config["listen"])
    return strports.service(config["listen"], factory)


def listen(reactor, config):
    """
    Start listening as C{config} describes.

    @param reactor: The reactor to listen with.

    @param config: A parsed L{Options}.

    @return: A L{Deferred} firing with the listening port, or failing with
        L{twisted.internet.error.CannotListenError}.
    """
    factory = makeFactory(config, reactor)
    endpoint = endpoints.serverFromString(reactor, config["listen"])
    d = endpoint.listen(factory)

    def listening(port):
        _log.info(
            "Server started and listening on {address}", address=port.getHost()
        )
        return port

    d.addCallback(listening)
    return d
