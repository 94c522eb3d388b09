"""memoir - conversation memory extraction and user profile service."""
