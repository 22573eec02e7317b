# -*- coding: utf-8 -*-
"""Exception taxonomy shared by the crawler components."""

from __future__ import annotations


class NovelGrabError(Exception):
    pass


class FatalError(NovelGrabError):
    """The catalog page itself could not be opened; the run is aborted."""


class NavigationError(NovelGrabError):
    """A chapter page failed to load; the chapter keeps what was gathered."""


class ExtractionError(NovelGrabError):
    """A content node had an unrecognized shape."""


class AssetCaptureError(NovelGrabError):
    """Every capture strategy failed for an image."""


class PersistenceError(NovelGrabError):
    """A chapter record could not be written."""
