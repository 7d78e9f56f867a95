"""Domain Event definitions.

Represents significant occurrences (API calls, retries, cache hits) that
other parts of the system might react to.
"""
