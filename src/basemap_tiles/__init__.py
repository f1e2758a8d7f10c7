"""
Basemap Tiles

Vector tile archive toolkit built around an overzoom engine: tiles deeper
than an archive's maximum zoom are derived from their stored ancestors by
clipping and rescaling, without re-rendering the source data.
"""

__version__ = "1.0.0"
