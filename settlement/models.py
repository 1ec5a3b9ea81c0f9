from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional, Union
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


MemberId = Union[UUID, int, str]


class Member(BaseModel):
    id: MemberId
    name: str
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)


class LedgerEntry(BaseModel):
    """A signed amount attributed to one member of a group.

    Expense entries are positive and feed the shared pool. Settlement
    entries only move money between members' paid totals.
    """
    member_id: MemberId
    amount: Decimal
    is_settlement: bool = False

    model_config = ConfigDict(frozen=True)


class Expense(BaseModel):
    member_id: MemberId
    amount: Decimal = Field(..., gt=0)

    def ledger_entry(self) -> LedgerEntry:
        return LedgerEntry(member_id=self.member_id, amount=self.amount)


class SettlementTransfer(BaseModel):
    from_member_id: MemberId
    to_member_id: MemberId
    amount: Decimal = Field(..., gt=0)

    def ledger_entries(self) -> Iterator[LedgerEntry]:
        # Both halves of the pair, always together.
        yield LedgerEntry(member_id=self.from_member_id, amount=self.amount, is_settlement=True)
        yield LedgerEntry(member_id=self.to_member_id, amount=-self.amount, is_settlement=True)


class GroupSnapshot(BaseModel):
    members: list[Member]
    entries: list[LedgerEntry] = Field(default_factory=list)


class MemberBalance(BaseModel):
    id: MemberId
    name: str
    email: Optional[str] = None
    paid: Decimal
    owes: Decimal
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)

    def is_settled(self, epsilon: Decimal) -> bool:
        return abs(self.balance) <= epsilon


class TransferSuggestion(BaseModel):
    from_member: MemberId = Field(..., alias="from")
    to_member: MemberId = Field(..., alias="to")
    from_name: Optional[str] = None
    to_name: Optional[str] = None
    amount: Decimal

    model_config = ConfigDict(populate_by_name=True)


class Summary(BaseModel):
    total_expense_pool: Decimal
    split_per_head: Decimal
    balances: list[MemberBalance]
    transfers: list[TransferSuggestion]


# --- Persistence records and requests ---

class User(BaseModel):
    id: UUID
    name: str
    email: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def as_member(self) -> Member:
        return Member(id=self.id, name=self.name, email=self.email)


class Group(BaseModel):
    id: UUID
    name: str
    members: list[User]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def has_member(self, user_id: UUID) -> bool:
        return any(user.id == user_id for user in self.members)


class ExpenseRecord(BaseModel):
    id: UUID
    group_id: UUID
    description: str
    amount: Decimal
    paid_by_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SettlementRecord(BaseModel):
    id: UUID
    group_id: UUID
    from_id: UUID
    to_id: UUID
    amount: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def transfer(self) -> SettlementTransfer:
        return SettlementTransfer(
            from_member_id=self.from_id, to_member_id=self.to_id, amount=self.amount
        )


class RegisterUserRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)

    model_config = ConfigDict(json_schema_extra={
        "example": {"name": "Alice", "email": "alice@example.com"}
    })


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    user_ids: list[UUID] = Field(default_factory=list, alias="userIds")

    model_config = ConfigDict(populate_by_name=True, json_schema_extra={
        "example": {
            "name": "Goa trip",
            "userIds": ["550e8400-e29b-41d4-a716-446655440000"]
        }
    })


class AddMemberRequest(BaseModel):
    user_id: UUID = Field(..., alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class CreateExpenseRequest(BaseModel):
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    paid_by_id: UUID = Field(..., alias="paidById")

    model_config = ConfigDict(populate_by_name=True, json_schema_extra={
        "example": {
            "description": "Dinner",
            "amount": 90.00,
            "paidById": "550e8400-e29b-41d4-a716-446655440000"
        }
    })


class RecordSettlementRequest(BaseModel):
    from_id: UUID = Field(..., alias="fromId")
    to_id: UUID = Field(..., alias="toId")
    amount: Decimal = Field(..., gt=0, decimal_places=2)

    model_config = ConfigDict(populate_by_name=True)


# --- HTTP responses ---

class SummaryTransaction(TransferSuggestion):
    can_settle: bool = Field(default=False, alias="canSettle")


class GroupSummaryResponse(BaseModel):
    group: str
    total_expense: Decimal = Field(..., alias="totalExpense")
    split_per_head: Decimal = Field(..., alias="splitPerHead")
    members: list[MemberBalance]
    transactions: list[SummaryTransaction]

    model_config = ConfigDict(populate_by_name=True)
