# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

from twisted.application.service import ServiceMaker

Fingerd = ServiceMaker(
    "fingerd", "fingerd.tap", "A finger (RFC 1288) user information server.", "fingerd"
)
