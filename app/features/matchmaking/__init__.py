"""
Matchmaking feature package.

This vertical slice keeps every layer of the attendee matchmaking engine
co-located: domain models, store backends, the ingestion pipeline
(dedup -> aggregation -> scoring), meeting scheduling, boundary services,
jobs and the API router.
"""
