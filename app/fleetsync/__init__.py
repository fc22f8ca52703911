"""fleetsync - client-side software reconciliation for managed fleets."""

__version__ = "0.4.0"
