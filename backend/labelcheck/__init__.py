"""Alcohol label verification service: multi-candidate extraction, scoring and consensus merging."""

__version__ = "1.0.0"
