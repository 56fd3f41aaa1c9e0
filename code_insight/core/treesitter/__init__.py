"""
Tree-sitter integration for code-insight.

Provides grammar loading, parsing and per-extension language profiles.
"""

from .parser import parse_source, get_parser, get_language
from .profiles import LanguageProfile, profile_for_path, SUPPORTED_EXTENSIONS

__all__ = [
    "parse_source",
    "get_parser",
    "get_language",
    "LanguageProfile",
    "profile_for_path",
    "SUPPORTED_EXTENSIONS",
]
