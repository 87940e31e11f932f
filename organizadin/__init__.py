"""
OrganizaDin storage core.
Local SQLite persistence, input sanitization, PIN-gated savings and backups.
"""
