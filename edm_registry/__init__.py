"""EDM Registry.

Enterprise data model registry for organizations, portfolios, persons,
benefits and health records: typed entity contracts, a schema registry,
validated transactional writes and pluggable storage.
"""

__version__ = "0.1.0"
