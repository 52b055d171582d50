"""
Pydantic Schemas
================

Request/response models for the versioning API.
"""
