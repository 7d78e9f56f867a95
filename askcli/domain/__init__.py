"""Domain Layer: value objects, the token bucket model, interfaces and events.

Has no dependencies on the core or infrastructure layers.
"""
