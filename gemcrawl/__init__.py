"""
Gemini Crawler

Crawls gemini capsules, following links in text/gemini documents and
keeping a resumable record of every address it discovers.
"""

__version__ = "1.0.0"
__description__ = "A resumable crawler for gemini capsules"
