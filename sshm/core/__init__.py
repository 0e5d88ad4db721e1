"""Core services: SSH config store, manual connection codec and history."""
