"""Authentication module for webauth."""

from webauth.auth.client import AuthenticationClient
from webauth.auth.grants import AuthorizationGrant, CodeExchanger, ImplicitGrant, PKCEGrant
from webauth.auth.models import Credentials, LoginResult, ResponseType, TransactionState
from webauth.auth.pkce import ChallengeGenerator, PKCEPair, generate_state
from webauth.auth.registry import TransactionRegistry
from webauth.auth.transaction import LogoutTransaction, Transaction
from webauth.auth.webauth import WebAuth, WebAuthConfig

__all__ = [
    "AuthenticationClient",
    "AuthorizationGrant",
    "ChallengeGenerator",
    "CodeExchanger",
    "Credentials",
    "ImplicitGrant",
    "LoginResult",
    "LogoutTransaction",
    "PKCEGrant",
    "PKCEPair",
    "ResponseType",
    "Transaction",
    "TransactionRegistry",
    "TransactionState",
    "WebAuth",
    "WebAuthConfig",
    "generate_state",
]
