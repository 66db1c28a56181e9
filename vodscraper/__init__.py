"""
Multi-source VOD Scraper Package
Catalogue, détails, page d'accueil et résolution des flux pour plusieurs sites
"""

from .base_source import (
    BaseSource, CatalogItem, Episode, Playlist, DetailMetadata, DetailBundle,
    ResolvedVideo, StreamType, HomeSection, home_sections_from_pair, UNKNOWN,
)
from .anime_sources import AgeSource, YhmcSource
from .registry import SourceRegistry, build_default_registry
from .utils import fetch_page, bypass_cloudflare, classify_stream_url, decode_line_file

__all__ = [
    'BaseSource',
    'CatalogItem',
    'Episode',
    'Playlist',
    'DetailMetadata',
    'DetailBundle',
    'ResolvedVideo',
    'StreamType',
    'HomeSection',
    'home_sections_from_pair',
    'UNKNOWN',
    'AgeSource',
    'YhmcSource',
    'SourceRegistry',
    'build_default_registry',
    'fetch_page',
    'bypass_cloudflare',
    'classify_stream_url',
    'decode_line_file',
]
