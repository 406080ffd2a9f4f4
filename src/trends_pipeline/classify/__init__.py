"""Keyword and value based classification of typed records into categories."""
