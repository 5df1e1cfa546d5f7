"""
velocity — signal extraction and priority triage for service-dispatch records.
"""

__version__ = "1.0.0"
