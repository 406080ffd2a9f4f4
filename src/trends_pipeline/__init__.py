"""trends_pipeline package.

Contains modules for streaming delimited sources (product reviews, product
metadata, macro-economic indicators), normalizing and classifying their
rows, bucketing them into calendar months, deriving proportions,
year-over-year change and rolling averages, and aligning several monthly
series onto one timeline for joint analysis.

Architecture:
- Parse -> Normalize -> Classify -> Aggregate per source, one task each
- Dask runs independent sources concurrently; alignment happens after
- Pydantic models validate configuration and published documents
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
