"""orderflow: write-back order intake with asynchronous persistence."""

__version__ = "0.1.0"
