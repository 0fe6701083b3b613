"""Domain Layer: models, errors, events and ports.

Contains no I/O. Everything here is shared by the core gateway and the
infrastructure adapters.
"""
