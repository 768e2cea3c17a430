"""
Background job pipelines for wardrobe items.

Two pipelines share one job state machine:
- image-cleanup: background removal, clean image and thumbnail
- attribute-detection: clothing attributes from a vision model
"""

__version__ = "0.1.0"
