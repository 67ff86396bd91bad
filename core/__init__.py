"""
Core processing modules for the bank statement analyzer.

This package contains:
- config: Application configuration and settings
- db: Analysis store backends
- exceptions: Custom exception classes
- exporters: Excel export of analysis history
- history: History aggregation for the dashboard
- logger: Logging configuration
- matching: Fuzzy category matching
- normalize: AI reply normalization
- parsing: PDF text extraction
- schema: Pydantic models for the canonical analysis
- taxonomy: Category taxonomy
"""
