#!/usr/bin/env python
# -*- coding: utf-8 -*-

import re

from setuptools import find_packages, setup


def read(filename):
    with open(filename, "r", encoding="utf-8") as f:
        return f.read()


def get_version():
    version_file = read("mssql_mcp_server/__init__.py")
    version_match = re.search(r"""^__version__ = ["']([^"']*)["']""", version_file, re.M)
    if version_match:
        return version_match.group(1)
    raise RuntimeError("Unable to find version string.")


setup(
    name="mssql_mcp_server",
    version=get_version(),
    description="A Model Context Protocol (MCP) server that executes SQL against Microsoft SQL Server",
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "mcp>=1.2.0,<2",
        "anyio>=4.0.0",
        "pydantic>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "aioodbc>=0.5.0",
        "aiosqlite>=0.19.0",
        "rich>=13.0.0",
        "python-decouple>=3.8",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.24.0",
        ],
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.24.0",
            "pytest-cov",
            "ruff",
            "mypy",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "mssql-mcp-server=mssql_mcp_server.server:main",
        ],
    },
    keywords=[
        "mcp",
        "sql",
        "sqlserver",
        "mssql",
        "database",
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
