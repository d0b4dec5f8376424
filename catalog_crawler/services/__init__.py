"""
Pipeline services for the catalog crawler.
"""
