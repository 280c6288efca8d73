"""
Upload policy for a verified identity.
Builds the three-record eACL table a credential carries. Record order matters:
  1. deny PUT for objects without a ContentType attribute
  2. allow PUT for the owner's objects with a safe content type, size and expiration
  3. deny PUT for everything else
"""
import hashlib
from datetime import timedelta

from oauthz.config import (
    DEFAULT_BEARER_LIFETIME,
    DEFAULT_EMAIL_ATTRIBUTE,
    DEFAULT_MAX_OBJECT_LIFETIME,
    DEFAULT_MAX_OBJECT_SIZE,
    DEFAULT_MS_PER_EPOCH,
)
from oauthz.eacl import (
    ATTRIBUTE_CONTENT_TYPE,
    ATTRIBUTE_EXPIRATION_EPOCH,
    FILTER_PAYLOAD_LENGTH,
    Action,
    Filter,
    Match,
    Operation,
    Record,
    Role,
    Table,
)

# Content types a browser would execute when served back from a gateway.
# Compared by exact string equality.
FORBIDDEN_CONTENT_TYPES = (
    "application/javascript",
    "application/x-javascript",
    "text/javascript",
    "application/xhtml+xml",
    "text/html",
    "text/htmlh",
)


def hash_email(email: str) -> str:
    """Hex SHA-256 of the email; used as the object attribute value and the identity label."""
    return hashlib.sha256(email.encode("utf-8")).hexdigest()


class PolicyBuilder:
    def __init__(
        self,
        container_id: str,
        *,
        email_attribute: str = DEFAULT_EMAIL_ATTRIBUTE,
        lifetime: int = DEFAULT_BEARER_LIFETIME,
        max_object_size: int = DEFAULT_MAX_OBJECT_SIZE,
        max_object_lifetime: timedelta = DEFAULT_MAX_OBJECT_LIFETIME,
        ms_per_epoch: int = DEFAULT_MS_PER_EPOCH,
    ):
        if ms_per_epoch <= 0:
            raise ValueError("ms_per_epoch must be positive")
        self.container_id = container_id
        self.email_attribute = email_attribute
        self.lifetime = lifetime
        self.max_object_size = max_object_size
        self.max_object_lifetime = max_object_lifetime
        self.ms_per_epoch = ms_per_epoch

    @classmethod
    def from_settings(cls, settings) -> "PolicyBuilder":
        return cls(
            settings.container_id,
            email_attribute=settings.email_attribute,
            lifetime=settings.bearer_lifetime,
            max_object_size=settings.max_object_size,
            max_object_lifetime=settings.max_object_lifetime,
            ms_per_epoch=settings.ms_per_epoch,
        )

    def age_epochs(self) -> int:
        """Max object lifetime in whole epochs, rounded down."""
        ms = self.max_object_lifetime // timedelta(milliseconds=1)
        return ms // self.ms_per_epoch

    def max_expiration_epoch(self, current_epoch: int) -> int:
        """Latest expiration epoch an uploaded object may declare."""
        return current_epoch + self.lifetime + self.age_epochs()

    def credential_expiration(self, current_epoch: int) -> int:
        return current_epoch + self.lifetime

    def build(self, hashed_email: str, current_epoch: int) -> Table:
        deny_untyped = Record(
            action=Action.DENY,
            operation=Operation.PUT,
            targets=(Role.OTHERS,),
            filters=(Filter(Match.NOT_PRESENT, ATTRIBUTE_CONTENT_TYPE),),
        )

        filters = [Filter(Match.STRING_EQUAL, self.email_attribute, hashed_email)]
        for content_type in FORBIDDEN_CONTENT_TYPES + ("",):
            filters.append(Filter(Match.STRING_NOT_EQUAL, ATTRIBUTE_CONTENT_TYPE, content_type))
        filters.append(Filter(Match.NUM_LE, FILTER_PAYLOAD_LENGTH, str(self.max_object_size)))
        filters.append(
            Filter(Match.NUM_LE, ATTRIBUTE_EXPIRATION_EPOCH, str(self.max_expiration_epoch(current_epoch)))
        )
        allow_owner = Record(
            action=Action.ALLOW,
            operation=Operation.PUT,
            targets=(Role.OTHERS,),
            filters=tuple(filters),
        )

        deny_rest = Record(action=Action.DENY, operation=Operation.PUT, targets=(Role.OTHERS,))

        return Table(container_id=self.container_id, records=(deny_untyped, allow_owner, deny_rest))
