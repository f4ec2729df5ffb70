"""Crawler for head-to-head tennis results from cztenis.cz."""

__version__ = '0.1.0'
