"""Bundled data files for fleetsync."""
