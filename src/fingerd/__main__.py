# -*- test-case-name: fingerd.test.test_main -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Run a finger server: C{python -m fingerd [options]}.
"""

import sys

from twisted.internet import defer, task
from twisted.logger import globalLogBeginner, textFileLogObserver
from twisted.python import usage

from fingerd.tap import Options, listen


def main(reactor, config):
    """
    Listen as C{config} describes and serve until the process is killed.

    @return: A L{Deferred} which fails if the server could not listen and
        otherwise never fires.
    """
    d = listen(reactor, config)
    d.addCallback(lambda port: defer.Deferred())
    return d


def run(argv=None):
    """
    Parse the command line, start logging to stdout and run the server.
    """
    config = Options()
    try:
        config.parseOptions(argv)
    except usage.UsageError as ue:
        print(config)
        print(f"{sys.argv[0]}: {ue}")
        sys.exit(1)
    globalLogBeginner.beginLoggingTo([textFileLogObserver(sys.stdout)])
    task.react(main, [config])


if __name__ == "__main__":
    run()
