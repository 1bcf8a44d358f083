"""
Tile Rules: declarative condition and template evaluation for tiles and
automated actions.
"""
