"""
Gemini crawler core components.
"""

from .url_frontier import URLFrontier, CrawlEntry, FrontierOrder
from .url_resolver import Address, InvalidAddress, resolve
from .fetcher import GeminiFetcher, FetchError, FetchTimeout, FetchTransportError
from .response import GeminiResponse, MalformedResponse, StatusCategory, parse_response

__all__ = [
    'URLFrontier', 'CrawlEntry', 'FrontierOrder',
    'Address', 'InvalidAddress', 'resolve',
    'GeminiFetcher', 'FetchError', 'FetchTimeout', 'FetchTransportError',
    'GeminiResponse', 'MalformedResponse', 'StatusCategory', 'parse_response'
]
