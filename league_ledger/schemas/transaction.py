"""
Pydantic schemas for transfers and ledger listings.

Amount and same-account checks are left to the transaction service so that
they surface as invalid_input errors like every other business rule.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from league_ledger.models.transaction import TransactionCategory


class TransferRequest(BaseModel):
    """
    Request body for both transfer endpoints.

    Directors may omit from_account_id when they direct a single team; it is
    always forced to their own team account.
    """
    from_account_id: uuid.UUID | None = None
    to_account_id: uuid.UUID
    amount: int = Field(description="Positive integer amount")
    category: TransactionCategory
    description: str | None = Field(None, max_length=255)
    use_balance: bool = Field(
        True,
        description="False mints currency from the system account (admin only)",
    )


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: uuid.UUID
    league_id: uuid.UUID
    from_account_id: uuid.UUID
    to_account_id: uuid.UUID
    from_name: str | None = None
    to_name: str | None = None
    amount: int
    category: TransactionCategory
    description: str | None
    is_issuance: bool
    created_by: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionPageResponse(BaseModel):
    """Response body for GET /leagues/{id}/transactions."""
    transactions: list[TransactionResponse]
    total: int
    page: int
    total_pages: int
