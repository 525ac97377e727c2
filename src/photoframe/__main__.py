"""
Entry point for: python -m photoframe

Starts the photo frame core (slideshow, offline cache and sync).
"""

from photoframe.player.frame_app import main

if __name__ == "__main__":
    main()
