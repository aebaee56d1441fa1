"""
imgnote - versioned rectangular annotations for images.

Notes are drawn on posts (images), validated against the image bounds and
recorded in an append-only version ledger that supports single-note revert,
copying onto differently-sized posts and atomic undo of everything one user
changed.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("imgnote")
except PackageNotFoundError:
    __version__ = "0.3.0"
