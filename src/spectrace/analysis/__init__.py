"""Traceability and schema analysis for spectrace."""
