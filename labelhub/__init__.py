"""
LabelHub

A backend for labeled image datasets: batch uploads, append-only label
history with per-labeler consensus, paginated review and CSV export.
"""

__version__ = "1.0.0"
__author__ = "LabelHub Team"
