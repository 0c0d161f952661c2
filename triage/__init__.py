"""
triage — interactive triage of precomputed event clusters.
"""

from triage.navigator import Navigator

__all__ = [
    "Navigator",
]
