"""Domain Event definitions.

Represents significant occurrences in the data-access layer (calls, retries,
token refreshes) that observers might react to.
"""
