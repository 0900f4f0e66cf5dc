"""
Outreach
Lead Enrichment Engine

Personalized email drafting for scored leads.
"""

from .email_drafter import EmailDrafter

__all__ = ["EmailDrafter"]
