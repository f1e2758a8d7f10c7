"""
Tile Server Module

HTTP access to an archive, including tiles synthesized past its max zoom.
"""

from .tile_server import create_app

__all__ = ["create_app"]
