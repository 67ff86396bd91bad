"""
Service layer for business logic.

This package contains service classes that orchestrate the
statement analysis pipeline: text extraction, AI categorization,
normalization, persistence and history aggregation.
"""
