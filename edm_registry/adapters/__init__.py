"""Adapters layer for EDM Registry.

Adapters implement the Port interfaces defined in the domain layer and
handle translation between domain records and external systems.
"""
