"""Storage Implementations.

Key/value persistence adapters (disk and in-memory) and the credential store.
Bounded Context: Local Persistence
"""
