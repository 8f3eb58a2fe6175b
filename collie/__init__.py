"""
Collie - ROM Metadata, Box Art & Guide Scraper

Scans console folders for ROMs, queries ScreenScraper, TheGamesDB and the
GameFAQs archive for metadata, box art and guides, and reports live progress
to a small web control UI.
"""

__version__ = "0.4.0"
__author__ = "collie contributors"
