# -*- test-case-name: fingerd -*-

# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
fingerd: a minimal Finger (RFC 1288) user information server.
"""

from fingerd._version import __version__ as version

__version__ = version.short()
