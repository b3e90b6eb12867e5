from __future__ import annotations

import re
import unicodedata
from datetime import date
from typing import List, Optional, Tuple

# ----------------------------
# Viscosity-grade rewrites
# Applied in order, as literal substring replacements, after cleanup.
# ----------------------------
_GRADE_REWRITES: Tuple[Tuple[str, str], ...] = (
    ("15-40", "15w40"),
    ("15w-40", "15w40"),
    ("5w-30", "5w30"),
    ("10w-30", "10w30"),
    ("10w-40", "10w40"),
    ("20w-50", "20w50"),
    ("5w-20", "5w20"),
    ("80-90", "80w90"),
    ("85-140", "85w140"),
)

# ----------------------------
# Regex helpers
# ----------------------------
# Anything that is not a word char, whitespace or hyphen becomes a space.
_PUNCT_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SPACES_RE = re.compile(r"\s+")

# "15w40", "5w30", "80w90"
GRADE_RE = re.compile(r"^[0-9]+w[0-9]+$")

# Plain ASCII digit strings: "8", "12". Not "²" or "٣".
_NUMBER_RE = re.compile(r"^[0-9]+$")

# Item line body: "Rotella T4 8" -> ("Rotella T4", "8")
_TRAILING_QTY_RE = re.compile(r"^(.+?)\s+([0-9]+)$")

# Dispatch dates: "3/7", "03/07"
_DATE_RE = re.compile(r"^\s*([0-9]{1,2})\s*/\s*([0-9]{1,2})\s*$")

QUICK_ITEM_PREFIX = "*"

CONTAINMENT_SCORE = 0.9
DETAILED_SCORE_BELOW = 0.3
PARTIAL_LONG_SCORE = 0.8
PARTIAL_SHORT_SCORE = 0.5


# ----------------------------
# Canonicalization pipeline
# ----------------------------
def _strip_diacritics(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(s: str) -> str:
    """
    Canonical form used for every comparison.
    Pipeline:
      lower -> strip diacritics -> punctuation to spaces -> collapse -> grade rewrites

    Example:
      "Aceite Hidráulico SAE 15W-40!" -> "aceite hidraulico sae 15w40"
    """
    s = (s or "").lower()
    s = _strip_diacritics(s)
    s = _PUNCT_RE.sub(" ", s)
    s = _SPACES_RE.sub(" ", s).strip()
    for old, new in _GRADE_REWRITES:
        s = s.replace(old, new)
    return s


def words(s: str) -> List[str]:
    """Split an already-normalized string into non-empty words."""
    return [w for w in (s or "").split(" ") if w]


def is_grade(word: str) -> bool:
    return bool(GRADE_RE.match(word or ""))


# ----------------------------
# Similarity
# ----------------------------
def _partial_match(w1: str, candidate_words: List[str]) -> float:
    for w2 in candidate_words:
        # "sae" in the query stands for any viscosity grade
        if (w1 == "sae" and is_grade(w2)) or (is_grade(w1) and w1 == w2):
            return 1.0
        if w2 in w1 or w1 in w2:
            shorter = min(len(w1), len(w2))
            return PARTIAL_LONG_SCORE if shorter > 2 else PARTIAL_SHORT_SCORE
    return 0.0


def similarity(query: str, candidate: str) -> float:
    """
    Score how well `candidate` answers `query`, roughly in [0, 1].

    Argument order matters: the word ratio is taken over the query's words,
    so callers always pass (query, candidate).
    """
    s1 = normalize_text(query)
    s2 = normalize_text(candidate)
    if not s1 or not s2:
        return 0.0

    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SCORE

    w1 = words(s1)
    w2 = words(s2)
    w2_set = set(w2)
    denom = max(len(w1), 1)

    exact = sum(1 for w in w1 if w in w2_set)
    score = exact / denom

    if score < DETAILED_SCORE_BELOW:
        matches = 0.0
        for w in w1:
            if w in w2_set:
                matches += 1.0
                continue
            matches += _partial_match(w, w2)
        score = max(score, matches / denom)

    return score


# ----------------------------
# Input grammars
# ----------------------------
def is_number(text: str) -> bool:
    return bool(_NUMBER_RE.match((text or "").strip()))


def parse_quantity(text: str) -> Optional[str]:
    """Return the quantity as a digit string, or None when it is not a positive integer."""
    t = (text or "").strip()
    if not _NUMBER_RE.match(t) or int(t) <= 0:
        return None
    return t


def parse_menu_choice(text: str, choices: str) -> Optional[str]:
    t = (text or "").strip()
    if len(t) == 1 and t in choices:
        return t
    return None


def parse_index(text: str, length: int) -> Optional[int]:
    """1-based menu number -> 0-based index, or None when out of range."""
    t = (text or "").strip()
    if not _NUMBER_RE.match(t):
        return None
    i = int(t) - 1
    if 0 <= i < length:
        return i
    return None


def parse_dispatch_date(text: str, today: date) -> Optional[str]:
    """
    "MM/DD" -> "MM/DD/YYYY" in the current year.
    Rejects month/day out of range and dates that do not exist ("02/30").
    """
    m = _DATE_RE.match(text or "")
    if not m:
        return None
    month, day = int(m.group(1)), int(m.group(2))
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        d = date(today.year, month, day)
    except ValueError:
        return None
    return d.strftime("%m/%d/%Y")


def parse_item_text(text: str) -> Tuple[str, str]:
    """
    "<product text> <qty>" -> (product text, qty). Quantity defaults to "1".
      "Rotella T4 8" -> ("Rotella T4", "8")
      "Delo"         -> ("Delo", "1")
    """
    t = (text or "").strip()
    m = _TRAILING_QTY_RE.match(t)
    # a trailing "0" is not a quantity, keep it as part of the product text
    if not m or int(m.group(2)) <= 0:
        return t, "1"
    return m.group(1).strip(), m.group(2)


def parse_quick_order(block: str) -> Tuple[str, List[Tuple[str, str]], str]:
    """
    Quick-order block:
      line 1            -> customer name
      lines with "*"    -> "<product> <optional qty>"
      last non-"*" line -> manual address (optional)

    Returns (customer, [(product, qty), ...], address). Blank lines are ignored;
    non-"*" lines other than the first and the last are ignored too.
    """
    lines = [ln.strip() for ln in (block or "").split("\n")]
    lines = [ln for ln in lines if ln]
    if not lines:
        return "", [], ""

    customer = lines[0]
    items: List[Tuple[str, str]] = []
    address = ""
    for i, line in enumerate(lines[1:], start=1):
        if line.startswith(QUICK_ITEM_PREFIX):
            body = line[len(QUICK_ITEM_PREFIX):].strip()
            if body:
                items.append(parse_item_text(body))
        elif i == len(lines) - 1:
            address = line
    return customer, items, address
