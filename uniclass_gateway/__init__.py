"""Uniclass Match Gateway.

HTTP gateway that resolves free-text construction classification queries
to Uniclass codes using text embeddings and a vector similarity store.
"""

__version__ = "1.0.0"
