"""Image upload endpoint and on-disk storage."""
