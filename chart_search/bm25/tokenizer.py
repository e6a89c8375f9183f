"""
Tokenizer for BM25 keyword search over clinical text.

Tokenization pipeline:
1. Lowercase conversion
2. Split on every non-alphanumeric character ("140/90" → "140", "90")
3. Drop single-character tokens
4. Filter stopwords (articles, conjunctions, common prepositions)
5. Optional Snowball stemming ("medications" → "medic")

Stemming is off by default. Query and documents must be tokenized with the
same setting, so the keyword index remembers which one it was built with.
"""

import re
from typing import List

from nltk.stem.snowball import SnowballStemmer

# Fixed English stopword list (not user-configurable)
STOPWORDS = frozenset([
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by',
    'for', 'from', 'has', 'he', 'in', 'is', 'it', 'its',
    'of', 'on', 'that', 'the', 'to', 'was', 'will', 'with'
])

_SPLIT_PATTERN = re.compile(r'[^a-z0-9]+')

# Initialize stemmer once (thread-safe, reusable)
_stemmer = SnowballStemmer('english')


def stem(word: str) -> str:
    """
    Stem a single lowercase word using the Snowball algorithm.

    Examples:
        >>> stem("medications")
        'medic'
        >>> stem("diagnosed")
        'diagnos'
    """
    return _stemmer.stem(word)


def tokenize(text: str, stem_tokens: bool = False) -> List[str]:
    """
    Tokenize text into lowercase alphanumeric terms without stopwords.

    Never raises: empty or punctuation-only input yields an empty list.

    Args:
        text: Input text to tokenize
        stem_tokens: Apply Snowball stemming to every surviving token

    Returns:
        Ordered list of tokens (duplicates preserved for term frequency)

    Examples:
        >>> tokenize("Patient diagnosed with Type 2 Diabetes mellitus")
        ['patient', 'diagnosed', 'type', 'diabetes', 'mellitus']

        >>> tokenize("Blood pressure 140/90")
        ['blood', 'pressure', '140', '90']

        >>> tokenize("?!...")
        []
    """
    if not text:
        return []

    tokens = [
        t for t in _SPLIT_PATTERN.split(text.lower())
        if len(t) > 1 and t not in STOPWORDS
    ]

    if stem_tokens:
        tokens = [stem(t) for t in tokens]

    return tokens


def term_frequencies(tokens: List[str]) -> dict:
    """Count occurrences of each token (insertion order = first occurrence)"""
    frequencies = {}
    for token in tokens:
        frequencies[token] = frequencies.get(token, 0) + 1
    return frequencies
