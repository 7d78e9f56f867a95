"""API Resilience Implementations.

Contains the token bucket rate limiters (in-process and shared between
processes through a locked state file) and retries with exponential backoff.
Bounded Context: API Resilience
"""
