"""
AI integration for statement categorization.

This package contains:
- classify: Prompt -> AI call -> normalization
- client: OpenAI REST client wrapper
- prompts: Categorization prompt builder
"""
