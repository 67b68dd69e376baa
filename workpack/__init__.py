"""
Work-package asset extraction service.

Splits utility work-order PDF packages into drawings, maps, photos and forms,
rasterizes the visual pages and attaches them to the job record.
"""

__version__ = "0.1.0"
