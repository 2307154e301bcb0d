"""Name normalisation and deterministic organisation ids.

``normalise`` applies these steps in order:

1. decompose (NFKD), casefold, drop combining marks and fold stroked
   letters (ø, ł, đ...), so case and diacritics never distinguish two names;
2. ``&`` becomes ``and``; any other punctuation becomes a space;
3. whitespace is collapsed and abbreviations are expanded
   (``dept`` -> ``department``, ``ltd`` -> ``limited``...);
4. common words (the, of, and, for) are removed unless nothing else is left;
5. known organisational suffixes and prefixes are stripped repeatedly until
   none applies. A strip that would empty the key is skipped.

Every step maps its own output to itself, which keeps ``normalise``
idempotent.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import replace
from typing import Sequence

from orgs_aggregator.common.errors import NormalisationError
from orgs_aggregator.common.ids import slugify_key
from orgs_aggregator.common.models import OrganisationDraft

_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_CODE_SLUG_RE = re.compile(r"[^a-z0-9]+")

# Lowercase letters with a stroke or ligature have no NFKD decomposition.
_LETTER_FOLDS = str.maketrans(
    {
        "ø": "o",
        "ł": "l",
        "đ": "d",
        "ð": "d",
        "ħ": "h",
        "ŧ": "t",
        "ƀ": "b",
        "ɨ": "i",
        "æ": "ae",
        "œ": "oe",
        "þ": "th",
        "ı": "i",
    }
)

TOKEN_REPLACEMENTS = {
    "dept": "department",
    "depts": "departments",
    "govt": "government",
    "org": "organisation",
    "assoc": "association",
    "comm": "commission",
    "corp": "corporation",
    "ltd": "limited",
    "natl": "national",
    "univ": "university",
}
COMMON_WORDS = frozenset({"the", "of", "and", "for"})

# Longest phrases first so "nhs foundation trust" wins over "trust".
STRIP_SUFFIXES: tuple[tuple[str, ...], ...] = (
    ("nhs", "foundation", "trust"),
    ("foundation", "trust"),
    ("nhs", "trust"),
    ("trust",),
    ("council",),
    ("limited",),
    ("plc",),
)
STRIP_PREFIXES: tuple[tuple[str, ...], ...] = (
    ("nhs",),
    ("hm",),
)


def _fold(text: str) -> str:
    # Decompose on both sides of casefold: compatibility forms can expand to
    # uppercase letters, and casefold can produce decomposable characters.
    folded = unicodedata.normalize("NFKD", unicodedata.normalize("NFKD", text).casefold())
    stripped = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return stripped.translate(_LETTER_FOLDS)


def _strip_affixes(tokens: list[str]) -> list[str]:
    changed = True
    while changed:
        changed = False
        for suffix in STRIP_SUFFIXES:
            size = len(suffix)
            if len(tokens) > size and tuple(tokens[-size:]) == suffix:
                tokens = tokens[:-size]
                changed = True
                break
        if changed:
            continue
        for prefix in STRIP_PREFIXES:
            size = len(prefix)
            if len(tokens) > size and tuple(tokens[:size]) == prefix:
                tokens = tokens[size:]
                changed = True
                break
    return tokens


def normalise(name: str) -> str:
    """Return the comparison key for an organisation name ("" if nothing is left)."""
    text = _fold(name).replace("&", " and ")
    text = _NON_WORD_RE.sub(" ", text)
    tokens = [TOKEN_REPLACEMENTS.get(token, token) for token in text.split()]
    kept = [token for token in tokens if token not in COMMON_WORDS]
    if kept:
        tokens = kept
    return " ".join(_strip_affixes(tokens))


def _code_slug(value: str) -> str:
    return _CODE_SLUG_RE.sub("-", value.lower()).strip("-")


def compute_id(draft: OrganisationDraft, key: str | None = None) -> str:
    """Deterministic id: source prefix, name slug and the first native code if any."""
    key = normalise(draft.name) if key is None else key
    if not key:
        raise NormalisationError(
            f"name {draft.name!r} is empty after normalisation",
            source=draft.source.value,
            record_id=draft.record_id,
            name=draft.name,
        )
    parts = [draft.source.value.replace("_", "-"), slugify_key(key)]
    if draft.identifiers:
        parts.append(_code_slug(draft.identifiers[0][1]))
    elif draft.location is not None and draft.location.postcode:
        parts.append(_code_slug(draft.location.postcode))
    return "-".join(part for part in parts if part)


def assign_identity(draft: OrganisationDraft) -> OrganisationDraft:
    key = normalise(draft.name)
    return replace(draft, normalised_name=key, id=compute_id(draft, key))


def cluster_id(members: Sequence[OrganisationDraft]) -> str:
    """Id of the most authoritative member; the smallest id breaks ties."""
    best = min(members, key=lambda draft: (-draft.reference.confidence, draft.id))
    return best.id
