"""Data module - ledger models, schemas and API routes."""
from app.data import routes

__all__ = ["routes"]
