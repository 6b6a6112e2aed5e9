"""
Retrieval Components - Semantic search with a fuzzy fallback

- Nearest-neighbor retrieval with a distance ceiling
- Edit-distance matching for misheard proper nouns

License: MIT
"""

from .fuzzy_matcher import FuzzyMatcher, FuzzyMatch, levenshtein_distance, similarity
from .context_retriever import ContextRetriever

__all__ = [
    "FuzzyMatcher",
    "FuzzyMatch",
    "levenshtein_distance",
    "similarity",
    "ContextRetriever",
]
