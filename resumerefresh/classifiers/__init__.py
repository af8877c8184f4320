"""
Classifiers Package - Decide which email variant a recipient can render
"""

from resumerefresh.classifiers.capability import CapabilityClassifier, classify_recipient, get_classifier

__all__ = [
    "CapabilityClassifier",
    "classify_recipient",
    "get_classifier",
]
