from storage.models.identity import (
    SERVER_OWNED_FIELDS,
    ConsentProfile,
    Identity,
    TrustDecision,
    UserProfile,
)

__all__ = [
    "SERVER_OWNED_FIELDS",
    "ConsentProfile",
    "Identity",
    "TrustDecision",
    "UserProfile",
]
