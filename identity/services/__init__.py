"""Identity services."""

from identity.services.password_hasher import PasswordHasher
from identity.services.token_hasher import TokenHasher
from identity.services.token_issuer import TokenIssuer
from identity.services.session_manager import SessionManager
from identity.services.task_dispatcher import TaskDispatcher
from identity.services.search_index import SearchIndex, HttpSearchIndex, LoggingSearchIndex
from identity.services.email_service import EmailService
from identity.services.account_lifecycle import AccountLifecycle

__all__ = [
    "PasswordHasher",
    "TokenHasher",
    "TokenIssuer",
    "SessionManager",
    "TaskDispatcher",
    "SearchIndex",
    "HttpSearchIndex",
    "LoggingSearchIndex",
    "EmailService",
    "AccountLifecycle",
]
