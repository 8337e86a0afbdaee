"""Runner Image Generator - container image builds from pluggable components.

This package assembles container build specifications from ordered
components, triggers them on a remote build executor and reports their
completion back to the provisioning system waiting on them.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
