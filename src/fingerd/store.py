# -*- test-case-name: fingerd.test.test_store -*-
# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Flat-file storage of finger records.

Each user is described by a single UTF-8 text file named C{<username>.txt}
in one directory.  Anything that prevents a record from being served, be it a
missing file, an unreadable one or one that is not valid UTF-8, is reported to
the client as L{USER_NOT_FOUND}; the log says which it was.
"""

from __future__ import annotations

import os
from typing import Union

from twisted.logger import Logger, LogLevel
from twisted.python.filepath import FilePath, InsecurePath

__all__ = ["USER_NOT_FOUND", "RECORD_EXTENSION", "isSafeUsername", "UserStore"]

USER_NOT_FOUND = "user not found"
RECORD_EXTENSION = ".txt"

_UNSAFE = {"/", "\\", "\0", os.sep} | ({os.altsep} if os.altsep else set())


def isSafeUsername(username: str) -> bool:
    """
    Can C{username} be turned into a record file name without escaping the
    record directory?

    @param username: A normalized query.

    @return: C{False} if C{username} contains a path separator, a NUL or a
        parent-directory sequence.
    """
    if ".." in username:
        return False
    return not any(character in username for character in _UNSAFE)


class UserStore:
    """
    A read-only mapping of usernames to record text, backed by a directory.

    Nothing is cached; every lookup goes to the filesystem, so records may be
    edited while the server runs.

    @ivar directory: The directory holding the records.
    @type directory: L{FilePath}

    @ivar verbose: Log a line for every lookup of a missing record.
    """

    _log = Logger()

    def __init__(
        self, directory: Union[FilePath[str], str], verbose: bool = False
    ) -> None:
        if not isinstance(directory, FilePath):
            directory = FilePath(directory)
        self.directory = directory
        self.verbose = verbose

    def __repr__(self) -> str:
        return f"<UserStore {self.directory.path!r}>"

    def recordFor(self, username: str) -> FilePath[str]:
        """
        @return: The path of the record file for C{username}.

        @raise InsecurePath: If C{username} would address a file outside of
            L{directory}.
        """
        if not isSafeUsername(username):
            raise InsecurePath(f"{username!r} is not a valid username")
        return self.directory.child(username + RECORD_EXTENSION)

    def lookup(self, username: str) -> str:
        """
        Find the record of a user.

        This blocks on the filesystem; callers in the reactor thread should
        run it in a worker thread.

        @param username: A normalized, non-empty query.

        @return: The complete text of the record, or L{USER_NOT_FOUND}.
        """
        try:
            record = self.recordFor(username)
        except InsecurePath:
            self._log.warn(
                "Refusing to look up unsafe username {username!r}",
                username=username,
            )
            return USER_NOT_FOUND

        try:
            content = record.getContent()
        except FileNotFoundError:
            if self.verbose:
                self._log.info(
                    "Could not find {filename} in {directory}",
                    filename=record.basename(),
                    directory=self.directory.path,
                )
            return USER_NOT_FOUND
        except OSError:
            self._log.failure(
                "Error reading {filename} in {directory}",
                level=LogLevel.error,
                filename=record.basename(),
                directory=self.directory.path,
            )
            return USER_NOT_FOUND

        try:
            return content.decode("utf-8")
        except UnicodeDecodeError:
            self._log.warn(
                "{filename} in {directory} is not valid UTF-8",
                filename=record.basename(),
                directory=self.directory.path,
            )
            return USER_NOT_FOUND
