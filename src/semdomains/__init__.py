"""Semantic-domain annotation for song-lyric vocabulary."""

__version__ = "0.1.0"
