"""VinylScout backend: shelf scanning and record recommendations."""

__version__ = "0.1.0"
