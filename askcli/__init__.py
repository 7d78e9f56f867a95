"""askcli: a command-line client for chat-completion APIs.

Layers follow a Domain-Driven layout: `domain` (models, interfaces, events),
`core` (use cases and command handling) and `infrastructure` (adapters).
"""

__version__ = "0.1.0"
