"""
Email bundle conversion service.

This package turns a Canva email export (an HTML document plus its local
images) into one self-contained HTML document whose images point at
permanent, content-addressed CDN URLs.
"""

__version__ = "1.0.0"
