"""
SiteWorx Migrate - move InterWorx SiteWorx accounts between servers.

Runs on the destination server and pulls accounts from a source server
over SSH: first the account structure, then files and MySQL databases.
"""

__version__ = "1.0.0"
__author__ = "Server Management Team"
