"""
Fuzzy Matcher - Edit-distance matching robust to transcription errors

Spoken queries often arrive with proper nouns misspelled ("Sarah Chin" for
"Sarah Chen"). The matcher scores candidate texts against the query using
normalized Levenshtein similarity, with a table of known name variants so
that a misheard surname still finds its canonical spelling.

License: MIT
"""

from typing import List, Dict, Optional, Sequence
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

NAME_VARIANTS: Dict[str, List[str]] = {
    # East-Asian transliterations
    "chen": ["chin", "chan", "cheng", "chine"],
    "zhang": ["chang", "zhang", "zhan"],
    "wang": ["wang", "wong", "wahng"],
    "li": ["lee", "li", "ly"],
    "liu": ["liu", "lew", "loo"],
    "yang": ["yang", "yong", "yaang"],
    "huang": ["huang", "hwang", "wahng"],
    "zhou": ["zhou", "joe", "jou"],
    "wu": ["wu", "woo"],
    "xu": ["xu", "shu", "su"],
    "sun": ["sun", "soon", "son"],
    "ma": ["ma", "mah", "mar"],
    "hu": ["hu", "who", "hoo"],
    "guo": ["guo", "goo", "gwo"],
    "lin": ["lin", "lynn", "leen"],
    "he": ["he", "her", "hee"],
    "gao": ["gao", "gow", "gau"],
    "zheng": ["zheng", "jung"],
    "shi": ["shi", "she", "shee"],
    # Hispanic surnames
    "perez": ["perez", "peres"],
    "garcia": ["garcia", "garsha"],
    "rodriguez": ["rodriguez", "rodriques", "rodriges"],
    "gonzalez": ["gonzalez", "gonzales"],
    "lopez": ["lopez", "lopes"],
    "martinez": ["martinez", "martines"],
    "sanchez": ["sanchez", "sanches"],
    "ramirez": ["ramirez", "ramires"],
    "torres": ["torres", "tores"],
    "flores": ["flores", "floress"],
    "rivera": ["rivera", "riviera"],
    "gomez": ["gomez", "gomes"],
    "diaz": ["diaz", "dias"],
    "morales": ["morales", "moralez"],
    "ortiz": ["ortiz", "ortis"],
    "gutierrez": ["gutierrez", "gutieres"],
    "chavez": ["chavez", "chaves"],
    "ramos": ["ramos", "ramoss"],
    "hernandez": ["hernandez", "ernandez"],
    "jimenez": ["jimenez", "jimines"],
    "mendoza": ["mendoza", "mendosa"],
    "ruiz": ["ruiz", "ruez"],
    "aguilar": ["aguilar", "aguillar"],
    "medina": ["medina", "medinah"],
    "castillo": ["castillo", "castiloo"],
    "santiago": ["santiago", "santiango"],
}


def levenshtein_distance(a: str, b: str) -> int:
    """
    Minimum number of single-character insertions, deletions and
    substitutions turning ``a`` into ``b``.
    """
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current

    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity in [0, 1]; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


@dataclass
class FuzzyMatch:
    """A candidate that passed the fuzzy threshold."""

    text: str
    score: float
    index: int


class FuzzyMatcher:
    """
    Score candidate texts against a query by edit distance.

    A candidate is scored two ways: through the name-variant table when both
    query and candidate mention a variant of the same name, and by comparing
    the whole query to the start of the candidate. The better score wins.
    """

    def __init__(
        self,
        name_threshold: float = 0.6,
        full_query_threshold: float = 0.7,
        min_score: float = 0.5,
        prefix_length: int = 100,
        extra_variants: Optional[Dict[str, List[str]]] = None,
    ):
        """
        Initialize the matcher.

        Args:
            name_threshold: Minimum similarity for a name-variant pair
            full_query_threshold: Minimum similarity for the whole-query comparison
            min_score: Minimum best score for a candidate to be returned
            prefix_length: Leading characters of a candidate compared to the query
            extra_variants: Additional canonical name to variants entries
        """
        self.name_threshold = name_threshold
        self.full_query_threshold = full_query_threshold
        self.min_score = min_score
        self.prefix_length = prefix_length

        self.variants: Dict[str, List[str]] = {k: list(v) for k, v in NAME_VARIANTS.items()}
        for canonical, variants in (extra_variants or {}).items():
            merged = self.variants.setdefault(canonical.lower(), [])
            merged.extend(v.lower() for v in variants if v.lower() not in merged)

    def _name_score(self, query: str, candidate: str) -> float:
        best = 0.0
        for canonical, variants in self.variants.items():
            spellings = [canonical] + variants
            query_hits = [s for s in spellings if s in query]
            if not query_hits:
                continue
            candidate_hits = [s for s in spellings if s in candidate]
            for query_variant in query_hits:
                for candidate_variant in candidate_hits:
                    score = similarity(query_variant, candidate_variant)
                    if score > self.name_threshold and score > best:
                        best = score
        return best

    def score(self, query: str, candidate: str) -> float:
        """Best match score of ``candidate`` for ``query``, or 0.0."""
        query_lower = query.lower()
        candidate_lower = candidate.lower()

        best = self._name_score(query_lower, candidate_lower)

        full = similarity(query_lower, candidate_lower[: self.prefix_length])
        if full > self.full_query_threshold:
            best = max(best, full)

        return best

    def find_matches(self, query: str, candidates: Sequence[str]) -> List[FuzzyMatch]:
        """
        Find candidates that fuzzily match the query.

        Args:
            query: Query text
            candidates: Candidate texts

        Returns:
            Matches sorted by descending score; ``index`` is the candidate's
            position in ``candidates``
        """
        matches = []
        for index, candidate in enumerate(candidates):
            if not candidate:
                continue
            best = self.score(query, candidate)
            if best > self.min_score:
                matches.append(FuzzyMatch(text=candidate, score=best, index=index))

        matches.sort(key=lambda m: m.score, reverse=True)
        logger.debug(f"Fuzzy matched {len(matches)}/{len(candidates)} candidates")
        return matches
