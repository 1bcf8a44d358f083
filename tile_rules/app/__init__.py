"""Tile Rules application package."""
