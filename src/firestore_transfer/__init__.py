"""Firestore Transfer - JSON migration to and from Cloud Firestore over REST.

This package authenticates with a service account key, converts JSON values
to and from Firestore's typed representation, and moves document sets with
a rate-limited, retrying batch writer.
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
