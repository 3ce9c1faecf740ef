"""Probe-then-stream proxy engine.

  - validator.py — untrusted string → ValidatedURL (the only trust boundary)
  - filename.py  — ValidatedURL + content type → safe download filename
  - prober.py    — HEAD-then-GET metadata discovery
  - admission.py — size / type policy for the probe and download paths
  - relay.py     — RelaySession state machine + disconnect-aware response
  - headers.py   — outbound download headers
  - engine.py    — ProxyEngine composing the above; shared httpx client factory
  - router.py    — /probe and /download routes
"""
