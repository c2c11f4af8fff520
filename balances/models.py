from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class SummarySource(str, Enum):
    LLM = "llm"
    LOCAL = "local"


class Member(CamelModel):
    id: str
    name: str
    email: Optional[str] = None
    image_url: Optional[str] = None
    role: Optional[MemberRole] = None


class Split(CamelModel):
    member_id: str
    amount: Decimal
    settled: bool = False


class Expense(CamelModel):
    id: Optional[str] = None
    group_id: Optional[str] = None
    description: str = ""
    amount: Decimal
    payer_id: str
    splits: list[Split] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class Settlement(CamelModel):
    id: Optional[str] = None
    group_id: Optional[str] = None
    payer_id: str
    receiver_id: str
    amount: Decimal
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class CreateExpenseRequest(CamelModel):
    description: str = Field(..., description="What the money was spent on")
    amount: Decimal
    payer_id: str
    splits: list[Split]

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "description": "Dinner at the beach shack",
            "amount": 30.00,
            "payerId": "user-alice",
            "splits": [
                {"memberId": "user-alice", "amount": 10.00},
                {"memberId": "user-bob", "amount": 10.00},
                {"memberId": "user-charlie", "amount": 10.00}
            ]
        }
    })


class CreateSettlementRequest(CamelModel):
    payer_id: str
    receiver_id: str
    amount: Decimal
    note: Optional[str] = None


class OwesEntry(CamelModel):
    to: str
    amount: Decimal


class OwedByEntry(CamelModel):
    from_: str = Field(..., alias="from")
    amount: Decimal


class MemberBalance(CamelModel):
    id: str
    total_balance: Decimal
    owes: list[OwesEntry] = Field(default_factory=list)
    owed_by: list[OwedByEntry] = Field(default_factory=list)


class BalanceReport(CamelModel):
    members: list[Member]
    balances: list[MemberBalance]
    user_lookup_map: dict[str, Member]


class ComputeBalancesRequest(CamelModel):
    members: list[Member]
    expenses: list[Expense] = Field(default_factory=list)
    settlements: list[Settlement] = Field(default_factory=list)


class GroupInfo(CamelModel):
    id: str
    name: str
    description: Optional[str] = None


class GroupSummary(GroupInfo):
    member_count: int


class GroupDetail(GroupInfo):
    created_by: Optional[str] = None
    members: list[Member]


class GroupOverviewResponse(CamelModel):
    selected_group: Optional[GroupDetail] = None
    groups: list[GroupSummary]


class GroupExpensesResponse(BalanceReport):
    group: GroupInfo
    expenses: list[Expense]
    settlements: list[Settlement]


class SpendingSummaryResponse(CamelModel):
    group_id: str
    summary: str
    generated_by: SummarySource
