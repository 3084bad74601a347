"""chatmarks: bookmarks and topic segments for growing chat conversations."""

__version__ = "0.1.0"
