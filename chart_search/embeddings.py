"""
Text embeddings with the Google Gen AI SDK (Vertex AI text-embedding-005).

Embedding calls are blocking HTTP requests, so they run in a thread pool to
keep the asyncio event loop free. Batch embedding fans out one request per
text (bounded by max_workers) and returns vectors in input order.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from google import genai
from google.genai.types import EmbedContentConfig

from .stores.base import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-005"

# Task types understood by text-embedding-005
QUERY_TASK = "RETRIEVAL_QUERY"
DOCUMENT_TASK = "RETRIEVAL_DOCUMENT"


class GenAIEmbeddingProvider(EmbeddingProvider):
    """Vertex AI embeddings through google-genai"""

    def __init__(
        self,
        genai_client: genai.Client,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimension: int = 768,
        max_workers: int = 10,
        timeout: float = 120.0,
    ):
        """
        Args:
            genai_client: Google Gen AI client (vertexai=True)
            model: Embedding model name
            dimension: Output dimensionality requested from the model
            max_workers: Maximum concurrent API calls in batch mode
            timeout: Overall timeout for one batch (seconds)
        """
        if genai_client is None:
            raise ValueError("genai_client is required for GenAIEmbeddingProvider")

        self.genai_client = genai_client
        self.model = model
        self.dimension = dimension
        self.max_workers = max_workers
        self.timeout = timeout

    def _embed(self, text: str, task_type: str) -> List[float]:
        response = self.genai_client.models.embed_content(
            model=self.model,
            contents=text,
            config=EmbedContentConfig(
                task_type=task_type,
                output_dimensionality=self.dimension,
            ),
        )
        values = list(response.embeddings[0].values)

        if len(values) != self.dimension:
            raise ValueError(f"Embedding dimension mismatch: expected {self.dimension}, got {len(values)}")
        return values

    async def generate_embedding(self, text: str, task_type: str = QUERY_TASK) -> List[float]:
        """Embed one text (query embedding by default)"""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return await asyncio.to_thread(self._embed, text, task_type)

    async def generate_batch_embeddings(
        self,
        texts: List[str],
        task_type: str = DOCUMENT_TASK,
    ) -> List[List[float]]:
        """
        Embed many texts in parallel.

        Raises:
            TimeoutError: Batch did not finish within the configured timeout
        """
        if not texts:
            return []

        logger.info(f"Generating embeddings for {len(texts)} chunks (max {self.max_workers} parallel)")

        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = [loop.run_in_executor(executor, self._embed, text, task_type) for text in texts]
            embeddings = await asyncio.wait_for(asyncio.gather(*futures), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Timeout generating embeddings after {self.timeout:.0f}s")
            raise TimeoutError(f"Embedding generation timeout ({self.timeout:.0f}s)")
        finally:
            # In-flight calls finish in the background; queued ones are dropped
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(f"Generated {len(embeddings)} embeddings")
        return list(embeddings)

    def get_model_info(self) -> dict:
        return {"name": self.model, "type": "vertex_ai", "dimension": self.dimension}


def create_genai_client(project_id: Optional[str], location: str) -> genai.Client:
    """Vertex AI backed Gen AI client (credentials from the environment)"""
    return genai.Client(vertexai=True, project=project_id, location=location)
