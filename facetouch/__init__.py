# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Face touch monitor: learns what touching your face looks like and alerts you."""

__version__ = "0.1.0"
