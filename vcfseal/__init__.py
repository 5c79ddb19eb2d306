"""
vcfseal - selective FORMAT field encryption for VCF files.

Encrypts chosen per-sample FORMAT values into grammar-safe tokens and
widens their header Type declarations, so unmodified VCF tooling can
still parse the file. A symmetric pass decrypts the values and restores
the original Types.
"""

__version__ = "0.1.0"
