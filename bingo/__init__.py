"""Cookout Bingo: drop tracking, tile progress and board rendering."""

__version__ = "1.0.0"
