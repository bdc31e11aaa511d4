#!/usr/bin/env python

# Copyright (c) Twisted Matrix Laboratories.
# See LICENSE for details.

"""
Setuptools installer for fingerd.
"""

import pathlib

import setuptools

setuptools.setup(
    name="fingerd",
    version="1.0.0",
    description="A minimal finger (RFC 1288) user information server",
    long_description=pathlib.Path("README.rst").read_text(encoding="utf8"),
    long_description_content_type="text/x-rst",
    license="MIT",
    classifiers=[
        "Framework :: Twisted",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Topic :: Internet",
    ],
    python_requires=">=3.8",
    package_dir={"": "src"},
    # twisted.plugins has no __init__.py of its own here; only our plugin
    # module is installed into Twisted's plugin package.
    packages=setuptools.find_packages("src") + ["twisted.plugins"],
    install_requires=[
        "Twisted >= 22.10.0",
        "constantly >= 15.1",
        "incremental >= 22.10.0",
    ],
    entry_points={"console_scripts": ["fingerd = fingerd.__main__:run"]},
)
