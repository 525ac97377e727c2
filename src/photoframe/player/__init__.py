"""
Player package for the photo frame.
Contains the offline photo cache, the list reconciler, the slideshow
scheduler and the frame application that wires them together.
"""
