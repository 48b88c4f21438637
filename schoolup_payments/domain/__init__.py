"""
Domain layer: fee collection models and settlement events.

No dependencies on storage, HTTP or the mobile networks.
"""
