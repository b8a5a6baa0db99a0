"""
TidalVoice version information.
"""

# Semantic Versioning: MAJOR.MINOR.PATCH; keep in sync with pyproject.toml
VERSION = "0.4.0"

APP_NAME = "TidalVoice"


def get_version() -> str:
    """Get the current version string.

    Returns:
        str: Version string in format MAJOR.MINOR.PATCH
    """
    return VERSION


def get_app_info() -> str:
    """Application name and version, e.g. ``TidalVoice v0.4.0``."""
    return f"{APP_NAME} v{get_version()}"
