"""ScoutReel backend: LinkedIn profile scraping and personalized intro videos, metered by monthly credits."""

__version__ = "0.1.0"
