"""blobvault - content-addressed blob storage with retention rules."""

__version__ = "0.1.0"
