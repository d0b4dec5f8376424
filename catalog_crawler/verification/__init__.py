"""
Fact-check verification for extracted entities.
"""

from catalog_crawler.verification.fact_check import FactCheckReviewer

__all__ = ["FactCheckReviewer"]
