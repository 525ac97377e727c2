"""
Upload server for the photo frame.

Guests scan the frame's QR code, open the upload page and post photos; the
frame polls /photos for the current list.
"""

from photoframe.server.app import create_app

__all__ = ['create_app']
