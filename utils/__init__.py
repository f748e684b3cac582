"""Shared helpers for Evidence Stitcher (error taxonomy and API responses)."""
