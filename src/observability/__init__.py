"""Event bus and audit-trail subscriber."""
