"""
Registry tag auditor.

Cross-references the tags of a container registry repository with the images
running in one or more Kubernetes clusters and reports (optionally deletes)
the tags nobody runs.
"""

__version__ = "0.1.0"
