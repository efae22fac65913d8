"""
Resolvers that turn configuration into lookups used by the snapshot job.
"""

from .domains import DomainMapping, load_domain_mapping

__all__ = ["DomainMapping", "load_domain_mapping"]
