"""Rank a Spotify playlist by its tracks' audio features."""

__version__ = "0.1.0"
