"""
Optimization Module

Resource inventory and cost-saving recommendations:
- ResourceService: scoped resource queries, idle detection, tags
- RecommendationService: listing, summaries and the status lifecycle
"""

from .domain.resources import ResourceService
from .domain.recommendations import RecommendationService

__all__ = ["ResourceService", "RecommendationService"]
