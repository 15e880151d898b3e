"""
soundrelay: a bounded, rate-limit aware relay between chat requests and a
SoundCloud retrieval pipeline.
"""

__version__ = "0.4.0"
