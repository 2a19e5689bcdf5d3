"""Text scanning for inline hashtags and wiki-links.

Both scanners work on raw markdown; they do not need to understand it.
"""
import re
from typing import List, Optional, Set, Tuple

# A tag starts with an ASCII letter, so "#1" or "#42" are not tags while
# "#nodejs2" and "#v3" are.
TAG_PATTERN = re.compile(r"#([A-Za-z]\w*)", re.ASCII)

# [[Target]] or [[Target|Label]]
WIKI_LINK_PATTERN = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")


def extract_tags(content: str) -> Set[str]:
    """Derive the lowercase, deduplicated tag set from note content.

    Examples:
        >>> sorted(extract_tags("Learning #nodejs v18 and #python3"))
        ['nodejs', 'python3']
        >>> extract_tags("#3.14 #99 #_underscore")
        set()
    """
    if not content:
        return set()
    return {match.lower() for match in TAG_PATTERN.findall(content)}


def extract_wiki_links(content: str) -> List[Tuple[str, Optional[str]]]:
    """Return ``(target, label)`` pairs in order of appearance.

    Targets are stripped; labels are ``None`` when absent.
    """
    if not content:
        return []
    links = []
    for target, label in WIKI_LINK_PATTERN.findall(content):
        target = target.strip()
        if not target:
            continue
        links.append((target, label.strip() if label else None))
    return links


def links_to_title(content: str, title: str) -> bool:
    """Whether content holds a wiki-link whose target matches title (case-insensitive)."""
    wanted = title.strip().lower()
    return any(target.lower() == wanted for target, _ in extract_wiki_links(content))
