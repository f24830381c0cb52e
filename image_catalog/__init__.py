"""Image catalog service: tag-filtered listings over a cached relational store."""

__version__ = "0.1.0"
