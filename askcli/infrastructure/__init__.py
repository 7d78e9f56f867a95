"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (APIs, file system, console)
by implementing the interfaces defined in the domain layer.
"""
