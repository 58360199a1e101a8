"""Registry module.

This module handles:
- Parsing destination references
- Publishing assembled images
- The HTTP transport speaking the OCI distribution API
"""

from ksail_oci.registry.reference import Reference, parse_reference

__all__ = ["Reference", "parse_reference"]
