"""Field normalization for raw rows.

Provides tolerant parsers for dates, numbers and currency strings, and the
`FieldNormalizer` that turns a source's raw rows into typed records.
"""
