"""Service abstractions for the source and destination servers."""

from swm.services.identity import IdentityResolver
from swm.services.mysql import MySQLService
from swm.services.remote import RemoteShell
from swm.services.rsync import RsyncService
from swm.services.siteworx import SiteWorxService

__all__ = [
    "IdentityResolver",
    "MySQLService",
    "RemoteShell",
    "RsyncService",
    "SiteWorxService",
]
