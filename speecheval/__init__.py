"""Safety-gated evaluation pipeline for spoken-language transcripts."""

__version__ = "0.1.0"
