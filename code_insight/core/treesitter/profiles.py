"""
Language profiles keyed by file extension.

A profile names the grammar used to parse a file and the constructs that
grammar exposes. Analyzers consult the capability flags instead of the
language name.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


@dataclass(frozen=True)
class LanguageProfile:
    language_id: str
    interfaces: bool = False
    union_types: bool = False
    type_assertions: bool = False
    decorators: bool = False
    jsx: bool = False


TYPESCRIPT = LanguageProfile(
    language_id="typescript",
    interfaces=True,
    union_types=True,
    type_assertions=True,
    decorators=True,
)
TSX = LanguageProfile(
    language_id="tsx",
    interfaces=True,
    union_types=True,
    type_assertions=True,
    decorators=True,
    jsx=True,
)
# Plain JavaScript goes through the TSX grammar, which accepts it, but type
# constructs are never reported for it.
JAVASCRIPT = LanguageProfile(language_id="tsx", decorators=True, jsx=True)

PROFILES_BY_SUFFIX: Dict[str, LanguageProfile] = {
    ".ts": TYPESCRIPT,
    ".mts": TYPESCRIPT,
    ".cts": TYPESCRIPT,
    ".tsx": TSX,
    ".js": JAVASCRIPT,
    ".jsx": JAVASCRIPT,
    ".mjs": JAVASCRIPT,
    ".cjs": JAVASCRIPT,
}

SUPPORTED_EXTENSIONS = tuple(PROFILES_BY_SUFFIX)


def profile_for_path(path: Path) -> Optional[LanguageProfile]:
    return PROFILES_BY_SUFFIX.get(Path(path).suffix.lower())
