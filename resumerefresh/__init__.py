"""
Resume Refresh - AMP-for-Email resume update mailer and submission backend.
"""

__version__ = "1.0.0"
