"""FastAPI surface for collaborators of the sync engine."""
