"""
Candidate enrichment from external profile sources.

``EnrichmentService`` is the entry point used by the matching engine; the
per-source ``ProfileEnricher`` strategies live in their own modules.
"""

from .base import ProfileEnricher
from .service import EnrichmentService, enrichment_setting

__all__ = ['ProfileEnricher', 'EnrichmentService', 'enrichment_setting']
