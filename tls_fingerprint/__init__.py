"""
TLS Website Fingerprinting
==========================

Classifies encrypted sessions by originating website from per-record
sizes and directions, using a small NumPy network with hand-derived
gradients.
"""

__version__ = "1.0.0"
