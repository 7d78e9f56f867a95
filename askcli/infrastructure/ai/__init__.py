"""AI Model Implementations.

Contains clients/adapters for AI providers, each implementing the `AIModel`
interface from the domain layer.
"""
