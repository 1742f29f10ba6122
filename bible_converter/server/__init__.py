"""HTTP API over the conversion orchestrator (FastAPI)."""
