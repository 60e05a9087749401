"""Stock Score MCP Server."""

import os


def get_server_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("SERVER_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("stock-score")
    except Exception:
        return "dev"


SERVER_VERSION = get_server_version()
# Bump when the score payload changes materially (new fields, renamed fields, structure changes)
# v1: Initial schema with subscores, coverage, verdict and opportunity_series
# v2: Added proof and ratios sections
SCHEMA_VERSION = "2"
