"""Backend Implementations.

Concrete TaskBackend adapters: the simulated (mock) backend built on the
local store, and the real HTTP backend.
Bounded Context: Data Access
"""
