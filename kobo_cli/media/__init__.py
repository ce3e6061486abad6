"""
Media Processing Layer.

This package is responsible for book file operations: content-key
decryption, container transcoding, and downloading.
"""

from .decryptor import transcode_container

__all__ = ["transcode_container"]
