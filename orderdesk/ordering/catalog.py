from __future__ import annotations

import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .nlp import normalize_text, similarity, words

logger = logging.getLogger(__name__)


class CatalogItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = ""
    memo: str
    alt_description: str = ""
    full_name: str = ""


class AddressEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer_name: str
    address: str


class MatchCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: CatalogItem
    score: float


class MatchProfile(str, Enum):
    SEARCH = "search"  # guided "producto" step, code included, fixed threshold
    QUICK = "quick"  # quick-order block lines, special keywords count
    ADD = "add"  # adding to a quick or stored order


class MatchWeights(BaseModel):
    """Every tunable constant of the catalog ranking."""

    containment_bonus: float = 0.2
    keyword_bonus: float = 0.2
    special_keyword_bonus: float = 0.3
    brand_keywords: List[str] = Field(
        default_factory=lambda: ["mobil", "shell", "delo", "rotella", "chevron", "valvoline"]
    )
    special_keywords: List[str] = Field(default_factory=lambda: ["synthetic", "hdmo", "bulk"])
    grade_pattern: str = r"[0-9]+w[0-9]+"
    min_token_length: int = 3
    search_threshold: float = 0.1
    short_query_length: int = 3
    short_query_threshold: float = 0.3
    long_query_threshold: float = 0.05
    max_results: int = 10


DEFAULT_WEIGHTS = MatchWeights()


def load_weights(path: Optional[Path]) -> MatchWeights:
    """Read a weight table from JSON; missing file or no path -> defaults."""
    if not path:
        return DEFAULT_WEIGHTS
    if not path.exists():
        logger.warning("Match weights file %s not found, using defaults", path)
        return DEFAULT_WEIGHTS
    data = json.loads(path.read_text(encoding="utf-8"))
    return MatchWeights.model_validate(data)


# ----------------------------
# Catalog ranking
# ----------------------------
def _descriptive_fields(item: CatalogItem) -> Tuple[str, str, str]:
    return item.memo or "", item.alt_description or "", item.full_name or ""


def _scored_fields(item: CatalogItem, profile: MatchProfile) -> List[str]:
    fields = list(_descriptive_fields(item))
    if profile is MatchProfile.SEARCH:
        fields.append(item.code or "")
    return fields


def _contains_either_way(q_norm: str, fields_norm: Sequence[str]) -> bool:
    for f in fields_norm:
        if f and (q_norm in f or f in q_norm):
            return True
    return False


def _keyword_bonus(
    tokens: List[str],
    fields_norm: Sequence[str],
    profile: MatchProfile,
    weights: MatchWeights,
) -> float:
    grade_re = re.compile(weights.grade_pattern)
    bonus = 0.0
    for tok in tokens:
        present = any(tok in f for f in fields_norm)
        if not present:
            continue
        if tok in weights.brand_keywords or tok == "sae" or grade_re.fullmatch(tok):
            bonus += weights.keyword_bonus
        if profile is MatchProfile.QUICK and tok in weights.special_keywords:
            bonus += weights.special_keyword_bonus
    return bonus


def threshold_for(query: str, profile: MatchProfile, weights: MatchWeights = DEFAULT_WEIGHTS) -> float:
    if profile is MatchProfile.SEARCH:
        return weights.search_threshold
    if len((query or "").strip()) <= weights.short_query_length:
        return weights.short_query_threshold
    return weights.long_query_threshold


def score_item(
    query: str,
    item: CatalogItem,
    profile: MatchProfile = MatchProfile.SEARCH,
    weights: MatchWeights = DEFAULT_WEIGHTS,
) -> float:
    q_norm = normalize_text(query)
    if not q_norm:
        return 0.0

    base = max(similarity(query, f) for f in _scored_fields(item, profile))

    scored_norm = [normalize_text(f) for f in _scored_fields(item, profile)]
    if _contains_either_way(q_norm, scored_norm):
        base += weights.containment_bonus

    # keywords are looked up in the descriptive fields only, never the code
    desc_norm = [normalize_text(f) for f in _descriptive_fields(item)]
    tokens = [w for w in words(q_norm) if len(w) >= weights.min_token_length]
    return base + _keyword_bonus(tokens, desc_norm, profile, weights)


def rank_catalog(
    query: str,
    catalog: Sequence[CatalogItem],
    profile: MatchProfile = MatchProfile.SEARCH,
    weights: MatchWeights = DEFAULT_WEIGHTS,
) -> List[MatchCandidate]:
    """
    Rank catalog items for a free-text query.

    Only items scoring strictly above the profile threshold are kept. The sort
    is stable, so ties keep catalog order, and the list is capped.
    """
    if not (query or "").strip():
        return []

    limit = threshold_for(query, profile, weights)
    out: List[MatchCandidate] = []
    for item in catalog:
        s = score_item(query, item, profile, weights)
        if s > limit:
            out.append(MatchCandidate(item=item, score=s))

    out.sort(key=lambda c: c.score, reverse=True)
    logger.debug("rank %r (%s): %d candidates above %.2f", query, profile.value, len(out), limit)
    return out[: weights.max_results]


# ----------------------------
# Address lookup
# ----------------------------
def _word_overlap(name_norm: str, entry_norm: str) -> float:
    name_words = [w for w in words(name_norm) if len(w) > 2]
    entry_words = {w for w in words(entry_norm) if len(w) > 2}
    hits = sum(1 for w in name_words if w in entry_words)
    return hits / max(len(name_words), 1)


def rank_addresses(customer_name: str, directory: Sequence[AddressEntry]) -> List[Tuple[AddressEntry, float]]:
    if not (customer_name or "").strip():
        return []

    name_norm = normalize_text(customer_name)
    scored: List[Tuple[AddressEntry, float]] = []
    for entry in directory:
        by_words = similarity(customer_name, entry.customer_name)
        by_overlap = _word_overlap(name_norm, normalize_text(entry.customer_name))
        s = max(by_words, by_overlap)
        if s > 0:
            scored.append((entry, s))

    scored.sort(key=lambda x: x[1], reverse=True)
    return scored


def resolve_address(customer_name: str, directory: Sequence[AddressEntry]) -> str:
    """Best matching address for a customer name, or "" when nothing matches."""
    best = rank_addresses(customer_name, directory)
    return best[0][0].address if best else ""
