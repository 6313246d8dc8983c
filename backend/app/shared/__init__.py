"""
Shared Utilities

Exception hierarchy and helpers used across the accounts, listings,
predictions and chat domains.
"""

from .exceptions import (
    DomainException, ListingException, ListingNotFoundException,
    ListingPermissionException, InvalidListingDataException, UploadRejectedException,
    ChatException, RecipientNotFoundException, ConversationForbiddenException,
    PredictionException, ScoringServiceException, QueueUnavailableException,
    AuthenticationException, IdentityProviderNotConfiguredException,
    ConfigurationException,
    domain_exception_to_http_exception
)

__all__ = [
    "DomainException", "ListingException", "ListingNotFoundException",
    "ListingPermissionException", "InvalidListingDataException", "UploadRejectedException",
    "ChatException", "RecipientNotFoundException", "ConversationForbiddenException",
    "PredictionException", "ScoringServiceException", "QueueUnavailableException",
    "AuthenticationException", "IdentityProviderNotConfiguredException",
    "ConfigurationException",
    "domain_exception_to_http_exception",
]
