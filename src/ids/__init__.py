"""SSH intrusion detector — heuristic analysis of SSH connection attempts.

Modules
───────
  settings   — tunables with defaults, loaded from YAML
  store      — thread-safe bounded buffer of ConnectionAttempts
  geoip      — IP → country tag (LOCAL / RESERVED / ISO code / UNKNOWN)
  users      — local account registry from /etc/passwd
  views      — per-snapshot groupings shared by the detectors
  detectors  — eight heuristics: snapshot → AttackAlert
  pipeline   — engine facade, loaders, batch run, watch loop
  reporter   — rich console output, JSONL/CSV/TXT, PNG
  cli        — argparse entry-point
"""
