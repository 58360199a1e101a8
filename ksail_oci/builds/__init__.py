"""Build orchestration module.

This module handles:
- Build request validation and normalization
- Manifest discovery
- Layer packaging and image assembly
- The end-to-end build and push pipeline
"""

from ksail_oci.builds.service import WorkloadArtifactBuilder, build_artifact

__all__ = ["WorkloadArtifactBuilder", "build_artifact"]
