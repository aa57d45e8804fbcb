"""
CRM Profile Sync - Keep forum profile links in sync on CRM contact records.

This package looks up contacts in a CRM user directory (by id, external user id
or e-mail address) and stores the canonical forum profile URL in a custom
attribute on each matching contact.
"""

__version__ = "1.0.0"
__author__ = "CRM Profile Sync Team"
