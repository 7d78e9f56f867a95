"""Caching Service Implementation.

Provides the file-based ResponseCache: one JSON file per request fingerprint,
expired by age, safe to share between concurrent processes.
Bounded Context: Cache Management
"""
