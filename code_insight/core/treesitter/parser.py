"""
Tree-sitter grammar loading and parsing with per-thread parser instances.
"""

import threading
from functools import lru_cache

from tree_sitter import Language, Parser, Tree
from tree_sitter_typescript import language_tsx, language_typescript

_GRAMMARS = {
    "typescript": language_typescript,
    "tsx": language_tsx,
}

_local = threading.local()


@lru_cache(maxsize=None)
def get_language(language_id: str) -> Language:
    """Grammar for a profile's language id ('typescript' or 'tsx')."""
    loader = _GRAMMARS.get(language_id)
    if loader is None:
        raise ValueError(f"Unsupported language: {language_id}")
    return Language(loader())


def get_parser(language_id: str) -> Parser:
    # Parser objects are not safe to share between threads; languages are.
    parsers = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = _local.parsers = {}
    parser = parsers.get(language_id)
    if parser is None:
        parser = parsers[language_id] = Parser(get_language(language_id))
    return parser


def parse_source(source: str, language_id: str) -> Tree:
    return get_parser(language_id).parse(source.encode("utf-8"))
