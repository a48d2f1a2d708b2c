# Schemas package init
"""Pydantic request and response models for the JSON API."""
