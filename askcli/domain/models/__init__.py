"""Domain Models: value objects and the token bucket algorithm."""
