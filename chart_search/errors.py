"""
Error types for hybrid search.

Taxonomy:
- Caller-contract errors (bad options, missing patient filter) are raised
  synchronously before any index work. They subclass ValueError so callers
  that already guard on ValueError keep working.
- Collaborator failures (vector index, metadata store) are NOT wrapped.
  They propagate unchanged so the surrounding pipeline decides retry policy.
- Data anomalies (bad timestamps, empty queries, flat score distributions)
  never raise; they resolve to neutral fallback values.
"""


class ChartSearchError(Exception):
    """Base class for all errors raised by chart_search itself"""


class InvalidSearchOptions(ChartSearchError, ValueError):
    """Search options or filters violate the caller contract"""


class MissingPatientFilter(InvalidSearchOptions):
    """Search filters were supplied without the required patient_id"""

    def __init__(self, message: str = "filters.patient_id is required for patient-scoped search"):
        super().__init__(message)
