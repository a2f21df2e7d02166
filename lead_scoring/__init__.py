"""
Lead Scoring Module for the dealership squad.

This module provides lead qualification and export:
- Lead scoring (0-100 scale) with independent qualification flag
- Prioritized follow-up action items
- Spreadsheet export of qualified leads
"""

from .scoring_model import LeadScorer, LeadQualification, parse_amount
from .lead_router import LeadRouter, Lead, ExportResult

__all__ = [
    "LeadScorer",
    "LeadQualification",
    "parse_amount",
    "LeadRouter",
    "Lead",
    "ExportResult",
]
