"""Download proxy that passes files through and compiles slide manifests into PPTX decks."""

__version__ = "0.3.0"
