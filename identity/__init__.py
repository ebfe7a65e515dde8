"""
Identity and access service.

Account creation, credential verification, token and session issuance,
federated-login reconciliation and account administration.
"""

from identity.config import Settings, settings
from identity.gateway import AuthGateway
from identity.results import OperationResult, ResultStatus

__all__ = [
    "Settings",
    "settings",
    "AuthGateway",
    "OperationResult",
    "ResultStatus",
]
