# Live camera inference: object/face/landmark detection and tracking
__version__ = "0.1.0"
