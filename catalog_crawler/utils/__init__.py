"""
Utility modules for the catalog crawler.
"""
