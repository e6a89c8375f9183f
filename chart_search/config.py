"""
Configuration from environment variables.

Environment is loaded from .env.local (local dev, highest priority) or .env
at the project root, then read once into a SearchSettings instance.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .bm25.index import BM25Index
from .embeddings import GenAIEmbeddingProvider, create_genai_client
from .hybrid.engine import HybridSearchEngine
from .indexer import DocumentIndexer
from .logging_config import setup_logging
from .stores.factory import VALID_BACKENDS, StoreFactory

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_environment(root: Path = PROJECT_ROOT) -> Optional[Path]:
    """
    Load .env.local first (highest priority), then .env as fallback.

    Returns:
        The file that was loaded, or None when only system env vars are used
    """
    env_local = root / ".env.local"
    env_file = root / ".env"

    if env_local.exists():
        load_dotenv(env_local, override=True)
        return env_local
    if env_file.exists():
        load_dotenv(env_file, override=True)
        return env_file

    logger.debug("No .env.local or .env file found, using system environment variables only")
    return None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be true or false, got {value!r}")


def _env_path(name: str, default: str) -> Optional[Path]:
    """Unset → default; empty or "none" → None (feature disabled)"""
    value = os.getenv(name)
    if value is None:
        return Path(default)
    if value.strip().lower() in ("", "none"):
        return None
    return Path(value.strip())


def _env_number(name: str, default, cast, minimum=None):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        number = cast(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")
    if minimum is not None and number < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {number}")
    return number


@dataclass
class SearchSettings:
    backend: str = "memory"
    database_url: Optional[str] = None
    embedding_dimension: int = 768
    embedding_model: str = "text-embedding-005"
    gcp_project_id: Optional[str] = None
    gcp_location: str = "us-central1"
    recency_half_life_days: float = 180.0
    snippet_length: int = 150
    candidate_multiplier: int = 3
    require_patient_id: bool = True
    bm25_stemming: bool = False
    bm25_index_path: Path = Path("data/hybrid-search/index.json")
    log_level: str = "INFO"
    log_file: Optional[Path] = Path("logs/chart-search.log")

    @classmethod
    def from_env(cls) -> "SearchSettings":
        """
        Read settings from environment variables.

        Raises:
            ValueError: A variable is set to an invalid value
        """
        backend = os.getenv("SEARCH_BACKEND", "memory").strip().lower()
        if backend not in VALID_BACKENDS:
            raise ValueError(f"SEARCH_BACKEND must be one of {', '.join(VALID_BACKENDS)}, got {backend!r}")

        half_life = _env_number("RECENCY_HALF_LIFE_DAYS", 180.0, float)
        if half_life <= 0:
            raise ValueError(f"RECENCY_HALF_LIFE_DAYS must be positive, got {half_life}")

        settings = cls(
            backend=backend,
            database_url=os.getenv("DATABASE_URL") or None,
            embedding_dimension=_env_number("EMBEDDING_DIMENSION", 768, int, minimum=1),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-005"),
            gcp_project_id=os.getenv("GCP_PROJECT_ID") or None,
            gcp_location=os.getenv("GCP_LOCATION", "us-central1"),
            recency_half_life_days=half_life,
            snippet_length=_env_number("SNIPPET_LENGTH", 150, int, minimum=1),
            candidate_multiplier=_env_number("CANDIDATE_MULTIPLIER", 3, int, minimum=1),
            require_patient_id=_env_bool("REQUIRE_PATIENT_ID", True),
            bm25_stemming=_env_bool("BM25_STEMMING", False),
            bm25_index_path=Path(os.getenv("BM25_INDEX_PATH", "data/hybrid-search/index.json")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=_env_path("LOG_FILE", "logs/chart-search.log"),
        )

        if settings.backend == "postgres" and not settings.database_url:
            raise ValueError("DATABASE_URL environment variable is required when SEARCH_BACKEND=postgres")

        return settings


async def create_engine(settings: Optional[SearchSettings] = None) -> HybridSearchEngine:
    """
    Wire a HybridSearchEngine for the configured backend.

    A saved keyword index at settings.bm25_index_path is loaded when present.
    """
    settings = settings or SearchSettings.from_env()

    vector_index, metadata_store = await StoreFactory.create(
        backend=settings.backend,
        database_url=settings.database_url,
        dimension=settings.embedding_dimension,
    )

    if settings.bm25_index_path.exists():
        keyword_index = BM25Index.load(settings.bm25_index_path)
        if keyword_index.stemming != settings.bm25_stemming:
            raise ValueError(
                f"Saved keyword index at {settings.bm25_index_path} was built with "
                f"stemming={keyword_index.stemming}, but BM25_STEMMING={settings.bm25_stemming}"
            )
    else:
        keyword_index = BM25Index(stemming=settings.bm25_stemming)

    engine = HybridSearchEngine(
        vector_index,
        metadata_store,
        keyword_index=keyword_index,
        half_life_days=settings.recency_half_life_days,
        snippet_length=settings.snippet_length,
        candidate_multiplier=settings.candidate_multiplier,
        require_patient_id=settings.require_patient_id,
    )

    logger.info(
        f"Hybrid search engine ready (backend={settings.backend}, "
        f"keyword index: {len(keyword_index)} documents)"
    )
    return engine


async def create_indexer(
    settings: Optional[SearchSettings] = None,
    genai_client=None,
    configure_logging: bool = True,
) -> DocumentIndexer:
    """
    Wire the full stack: logging, the hybrid search engine and Vertex AI embeddings.

    Args:
        settings: Settings (read from the environment when omitted)
        genai_client: Pre-built Gen AI client; created from GCP_PROJECT_ID /
            GCP_LOCATION when omitted
        configure_logging: Install console and session file logging from
            LOG_LEVEL / LOG_FILE

    Raises:
        ValueError: No client given and GCP_PROJECT_ID is not set
    """
    settings = settings or SearchSettings.from_env()

    if configure_logging:
        setup_logging(log_file=settings.log_file, console_level=settings.log_level)

    if genai_client is None:
        if not settings.gcp_project_id:
            raise ValueError("GCP_PROJECT_ID environment variable is required for embeddings")
        genai_client = create_genai_client(settings.gcp_project_id, settings.gcp_location)

    embedding_provider = GenAIEmbeddingProvider(
        genai_client,
        model=settings.embedding_model,
        dimension=settings.embedding_dimension,
    )
    engine = await create_engine(settings)

    logger.info(f"Document indexer ready (embedding model {settings.embedding_model})")
    return DocumentIndexer(engine, embedding_provider)
