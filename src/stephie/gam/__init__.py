"""Google Ad Manager access: credentials, rate-limited queue and SOAP client."""

from stephie.gam.auth import CredentialCache, ServiceAccountSigner, get_credential_cache
from stephie.gam.client import GamClient, get_gam_client
from stephie.gam.queue import RequestQueue, get_gam_queue

__all__ = [
    "CredentialCache",
    "GamClient",
    "RequestQueue",
    "ServiceAccountSigner",
    "get_credential_cache",
    "get_gam_client",
    "get_gam_queue",
]
