"""KSail OCI - package Kubernetes manifests as OCI artifacts.

This package validates build inputs, packages a directory of manifest files
into a single-layer OCI image and pushes it to a container registry.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
