"""
Parcel Verifier — canonical identity and cross-source verification for land parcels.

Architecture: Structural validation → Canonical key → Geometry analysis → Reconciliation score
Philosophy:  Two independent records, one parcel. Every disagreement is itemized.
"""

__version__ = "1.0.0"
