"""
Catalog crawler Django application.

This app crawls manufacturer web pages and price-list PDFs, extracts typed
vehicle and campaign entities with an AI capability, fact-checks them, and
reconciles prices into a versioned price ledger.
"""
