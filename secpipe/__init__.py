"""secpipe: container-based security tool pipelines."""

__version__ = "0.1.0"
