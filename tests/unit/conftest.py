"""Unit test configuration - in-memory collaborators, no external services"""

import os

import pytest

from chart_search.bm25.index import BM25Index
from chart_search.hybrid.engine import HybridSearchEngine
from chart_search.stores.factory import StoreFactory
from chart_search.stores.memory import InMemoryMetadataStore, InMemoryVectorIndex

# Unit tests never talk to PostgreSQL, whatever the local .env says
os.environ["SEARCH_BACKEND"] = "memory"


@pytest.fixture(autouse=True)
def reset_store_factory():
    """StoreFactory caches its stores per process; isolate every test"""
    StoreFactory._instance = None
    yield
    StoreFactory._instance = None


@pytest.fixture
def vector_index():
    return InMemoryVectorIndex(dimension=3)


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def keyword_index():
    return BM25Index()


@pytest.fixture
def engine(vector_index, metadata_store, keyword_index):
    """Engine over in-memory stores (3-dimensional embeddings)"""
    return HybridSearchEngine(
        vector_index,
        metadata_store,
        keyword_index=keyword_index,
        require_patient_id=True,
    )
