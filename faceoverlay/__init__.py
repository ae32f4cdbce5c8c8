"""
Face Overlay - Source Package

Face-region alignment and photometric normalization pipeline for
overlaying a user's face onto a reference (jersey) image.

Modules:
- face_detection: Detection data model and landmark providers
- face_overlay: Orientation, alignment, masking, normalization, compositing
- utils: Image buffer I/O and logging configuration
- ui: Command line interface and configuration files
"""

__version__ = "1.0.0"
__author__ = "Face Overlay Tool"
