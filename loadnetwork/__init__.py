"""Load Network: Sylectus load-board scraper, sync pipeline and load alerts."""

__version__ = "0.4.0"
