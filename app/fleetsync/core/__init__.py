"""Reconciliation engine, stores and supporting services for fleetsync."""
