"""
kobo-cli: download your purchased Kobo e-books as plain EPUB files.
"""

__version__ = "0.1.0"
