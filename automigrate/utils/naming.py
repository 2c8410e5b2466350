"""
Naming helpers: column names, default table names and index key names.

Column names are the snake_case form of the attribute or class name, with
common initialisms (ID, URL, HTTP, ...) kept together so `UserID` becomes
`user_id` rather than `user_i_d`. Default table names are the plural of the
snake-cased model name.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, List, Tuple

_COMMON_INITIALISMS = (
    "API", "ASCII", "CPU", "CSS", "DNS", "EOF", "GUID", "HTML", "HTTP", "HTTPS",
    "ID", "IP", "JSON", "LHS", "QPS", "RAM", "RHS", "RPC", "SLA", "SMTP", "SSH",
    "TLS", "TTL", "UID", "UI", "UUID", "URI", "URL", "UTF8", "VM", "XML", "XSRF", "XSS",
)
_INITIALISM_RE = re.compile("|".join(sorted(_COMMON_INITIALISMS, key=len, reverse=True)))
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_KEY_NAME_RE = re.compile(r"[^a-zA-Z0-9]+")

_name_cache: Dict[str, str] = {}
_name_cache_lock = threading.Lock()


def to_column_name(name: str) -> str:
    """Convert an attribute or class name to its snake_case column name."""
    if not name:
        return ""
    with _name_cache_lock:
        cached = _name_cache.get(name)
    if cached is not None:
        return cached

    # Title-case initialisms first so the boundary regex treats them as words.
    value = _INITIALISM_RE.sub(lambda m: m.group(0).title(), name)
    value = _CAMEL_BOUNDARY_RE.sub("_", value)
    value = re.sub(r"_+", "_", value).lower()

    with _name_cache_lock:
        _name_cache[name] = value
    return value


_UNCOUNTABLE = frozenset(
    {"equipment", "information", "rice", "money", "species", "series", "fish", "sheep", "jeans", "police"}
)
_IRREGULAR = {
    "person": "people",
    "man": "men",
    "child": "children",
    "sex": "sexes",
    "move": "moves",
    "mouse": "mice",
    "ox": "oxen",
    "zombie": "zombies",
}
_PLURAL_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(p, re.IGNORECASE), r)
    for p, r in (
        (r"(quiz)$", r"\1zes"),
        (r"^(oxen)$", r"\1"),
        (r"^(ox)$", r"\1en"),
        (r"([m|l])ice$", r"\1ice"),
        (r"([m|l])ouse$", r"\1ice"),
        (r"(matr|vert|ind)(?:ix|ex)$", r"\1ices"),
        (r"(x|ch|ss|sh)$", r"\1es"),
        (r"([^aeiouy]|qu)y$", r"\1ies"),
        (r"(hive)$", r"\1s"),
        (r"(?:([^f])fe|([lr])f)$", r"\1\2ves"),
        (r"sis$", "ses"),
        (r"([ti])a$", r"\1a"),
        (r"([ti])um$", r"\1a"),
        (r"(buffal|tomat)o$", r"\1oes"),
        (r"(bu)s$", r"\1ses"),
        (r"(alias|status|campus)$", r"\1es"),
        (r"(octop|vir)(?:us|i)$", r"\1i"),
        (r"(ax|test)is$", r"\1es"),
        (r"s$", "s"),
    )
]


def pluralize(word: str) -> str:
    """Return the English plural of the last word in `word`."""
    if not word:
        return word
    head, sep, last = word.rpartition("_")
    lowered = last.lower()
    if lowered in _UNCOUNTABLE:
        return word
    if lowered in _IRREGULAR:
        return f"{head}{sep}{_IRREGULAR[lowered]}"
    for pattern, replacement in _PLURAL_RULES:
        if pattern.search(last):
            return f"{head}{sep}{pattern.sub(replacement, last)}"
    return word + "s"


def build_key_name(kind: str, table_name: str, *fields: str) -> str:
    """Build an index / foreign key name like `idx_users_deleted_at`."""
    key_name = "_".join([kind, table_name, *fields])
    return _KEY_NAME_RE.sub("_", key_name)


__all__ = ["build_key_name", "pluralize", "to_column_name"]
