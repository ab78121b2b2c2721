"""Window counter store adapters.

This package provides a small abstraction layer over the shared counter
store: Redis for deployments with several instances, an in-memory store for a
single process and for tests, both honouring the same atomic contract.
"""
