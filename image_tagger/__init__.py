"""
Image Tagger

A local web tool that scans a directory of images, shows each one with a
checklist of tags, and persists the checked tags per image as text files,
JSON sidecar documents, or rows in a small SQLite database.
"""

__version__ = "1.0.0"
__author__ = "Image Tagger Team"
