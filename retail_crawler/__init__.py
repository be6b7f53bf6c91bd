"""
Retail crawler Django application.

Schedules and dispatches crawl jobs per retailer, tracks retailer health,
and extracts product listings, details and reviews from retailer pages.
"""
