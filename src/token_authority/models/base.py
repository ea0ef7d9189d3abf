"""Base Pydantic model configuration for token authority records.

Records are frozen: grant redemption and session status changes produce new
instances through the store, never in-place mutation.
"""

from pydantic import BaseModel, ConfigDict


class TokenAuthorityBaseModel(BaseModel):
    """Base model for grants, sessions, clients and token claims.

    Example:
        >>> class Named(TokenAuthorityBaseModel):
        ...     name: str
        >>> Named(name="grant").name
        'grant'
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        use_enum_values=False,
        validate_default=True,
        validate_assignment=True,
    )
