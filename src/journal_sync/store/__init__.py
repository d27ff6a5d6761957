"""Local persistence: journal data, sync configs, manifests, credentials."""
