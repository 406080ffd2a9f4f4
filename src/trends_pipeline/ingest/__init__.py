"""Source ingestion: resolving source locations and streaming raw rows."""
