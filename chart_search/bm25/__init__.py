"""
BM25 (Best Match 25) keyword ranking for hybrid search.

Components:
- tokenizer: Text tokenization for term extraction (optional Snowball stemming)
- index: BM25Index with global IDF, running average length and JSON persistence
- scorer: SimplifiedBM25 without index statistics (per-candidate keyword match)

Two BM25 flavours coexist on purpose:
- BM25Index scores against the live corpus (IDF + actual avgdl)
- SimplifiedBM25 scores a single candidate in isolation (assumed avgdl, no IDF)
"""

from .tokenizer import STOPWORDS, stem, term_frequencies, tokenize
from .index import BM25Index
from .scorer import SimplifiedBM25

__all__ = [
    "STOPWORDS",
    "stem",
    "term_frequencies",
    "tokenize",
    "BM25Index",
    "SimplifiedBM25",
]
