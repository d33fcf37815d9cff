"""PatchBot — request-driven source edits via SEARCH/REPLACE blocks."""

from patchbot.identity import __codename__, __tagline__, __version__

__all__ = ["__version__", "__codename__", "__tagline__"]
