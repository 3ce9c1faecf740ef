"""vidproxy models package.

Defines the shared data contracts used by the probe/download engine:

  - resource.py  — ValidatedURL, ResourceMetadata, AdmissionDecision
  - responses.py — JSON response builders for /probe and error outcomes
"""
