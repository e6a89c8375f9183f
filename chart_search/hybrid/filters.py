"""
Metadata pre-filter: turns search filters into a candidate chunk id set.

Predicate evaluation (patient equality, inclusive date range, artifact type
membership, all AND-combined) is delegated to the metadata store. This module
owns the contract around it:
- patient_id is mandatory when the filter is patient-scoped (reject fast,
  never fall back to "all documents")
- an empty artifact_types list means "no type restriction"
- an empty result short-circuits the whole search (handled by the engine)
"""

import logging
from typing import List, Optional, Union

from pydantic import ValidationError

from ..errors import InvalidSearchOptions, MissingPatientFilter
from ..models import ChunkFilter, SearchFilters
from ..stores.base import MetadataStore

logger = logging.getLogger(__name__)


def coerce_filters(filters: Union[SearchFilters, dict, None]) -> Optional[SearchFilters]:
    """Validate a dict (or pass through a model); caller errors become InvalidSearchOptions"""
    if filters is None or isinstance(filters, SearchFilters):
        return filters
    try:
        return SearchFilters.model_validate(filters)
    except ValidationError as e:
        raise InvalidSearchOptions(f"Invalid search filters: {e}") from e


class MetadataPreFilter:
    """Restricts semantic and keyword search to chunks matching metadata filters"""

    def __init__(self, metadata_store: MetadataStore, require_patient_id: bool = True):
        """
        Args:
            metadata_store: Store that evaluates the predicates
            require_patient_id: Reject filters without patient_id
        """
        self.metadata_store = metadata_store
        self.require_patient_id = require_patient_id

    def build_criteria(self, filters: Union[SearchFilters, dict]) -> ChunkFilter:
        """
        Validate filters and translate them to store criteria.

        Raises:
            MissingPatientFilter: patient_id missing while required
            InvalidSearchOptions: malformed filters (bad dates, reversed range)
        """
        filters = coerce_filters(filters)

        patient_id = filters.patient_id.strip() if filters.patient_id else None
        if self.require_patient_id and not patient_id:
            raise MissingPatientFilter()

        return ChunkFilter(
            patient_id=patient_id,
            date_from=filters.date_from,
            date_to=filters.date_to,
            artifact_types=list(filters.artifact_types) if filters.artifact_types else None,
        )

    async def filter(self, filters: Union[SearchFilters, dict]) -> List[str]:
        """
        Candidate chunk ids for the given filters.

        Returns:
            Ordered, de-duplicated chunk ids (possibly empty)
        """
        criteria = self.build_criteria(filters)
        chunk_ids = await self.metadata_store.filter_chunks(criteria)
        chunk_ids = list(dict.fromkeys(chunk_ids))

        logger.debug(
            f"Pre-filter patient={criteria.patient_id} from={criteria.date_from} "
            f"to={criteria.date_to} types={criteria.artifact_types} → {len(chunk_ids)} candidates"
        )
        return chunk_ids
