"""Source credibility and political lane lookup."""

from .scorer import CredibilityScorer, credibility_label, default_scorer
from .table import CredibilityTable, load_table

__all__ = ["CredibilityScorer", "CredibilityTable", "credibility_label", "default_scorer", "load_table"]
