"""
Photo frame: a kiosk slideshow of guest-uploaded photos with an offline cache.
"""

__version__ = "0.1.0"
