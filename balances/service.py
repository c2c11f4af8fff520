import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional
from uuid import uuid4

from .engine import compute_group_balances
from .models import (
    BalanceReport,
    ComputeBalancesRequest,
    CreateExpenseRequest,
    CreateSettlementRequest,
    Expense,
    GroupDetail,
    GroupExpensesResponse,
    GroupInfo,
    GroupOverviewResponse,
    GroupSummary,
    Member,
    MemberRole,
    Settlement,
    SpendingSummaryResponse,
)
from .money import to_minor_units
from .summary import SpendingSummarizer

logger = logging.getLogger(__name__)


class BalanceServiceError(Exception):
    pass


class GroupNotFoundError(BalanceServiceError):
    pass


class UserNotFoundError(BalanceServiceError):
    pass


class NotGroupMemberError(BalanceServiceError):
    pass


class DataIntegrityError(BalanceServiceError):
    pass


class InMemoryStorage:
    def __init__(self, seed: bool = True):
        self.users: dict[str, dict] = {}
        self.groups: dict[str, dict] = {}
        self.expenses: dict[str, dict] = {}
        self.settlements: dict[str, dict] = {}
        # Handlers run on a threadpool; reads snapshot and writes insert under this lock.
        self.lock = threading.Lock()
        if seed:
            self._seed_data()

    def group_records(self, table: dict[str, dict], group_id: str) -> list[dict]:
        with self.lock:
            return [dict(r) for r in table.values() if r["group_id"] == group_id]

    def save(self, table: dict[str, dict], record: dict) -> None:
        with self.lock:
            table[record["id"]] = record

    def _seed_data(self):
        now = datetime.now(timezone.utc)
        for user_id, name in (
            ("user-alice", "Alice"), ("user-bob", "Bob"),
            ("user-charlie", "Charlie"), ("user-dave", "Dave"),
        ):
            self.users[user_id] = {
                "id": user_id, "name": name,
                "email": f"{name.lower()}@example.com",
                "image_url": None, "created_at": now,
            }

        self.groups["group-goa-trip"] = {
            "id": "group-goa-trip", "name": "Goa Trip",
            "description": "Beach weekend", "created_by": "user-alice",
            "members": [
                {"user_id": "user-alice", "role": MemberRole.ADMIN},
                {"user_id": "user-bob", "role": MemberRole.MEMBER},
                {"user_id": "user-charlie", "role": MemberRole.MEMBER},
            ],
        }

        self.expenses["expense-dinner"] = {
            "id": "expense-dinner", "group_id": "group-goa-trip",
            "description": "Dinner", "amount": Decimal("30.00"),
            "payer_id": "user-alice", "created_by": "user-alice", "created_at": now,
            "splits": [
                {"member_id": "user-alice", "amount": Decimal("10.00"), "settled": False},
                {"member_id": "user-bob", "amount": Decimal("10.00"), "settled": False},
                {"member_id": "user-charlie", "amount": Decimal("10.00"), "settled": False},
            ],
        }
        self.settlements["settlement-bob"] = {
            "id": "settlement-bob", "group_id": "group-goa-trip",
            "payer_id": "user-bob", "receiver_id": "user-alice",
            "amount": Decimal("10.00"), "note": "UPI",
            "created_by": "user-bob", "created_at": now,
        }


class GroupBalanceService:
    def __init__(self, storage: Optional[InMemoryStorage] = None, summarizer: Optional[SpendingSummarizer] = None):
        self.storage = storage or InMemoryStorage()
        self.summarizer = summarizer or SpendingSummarizer()

    def get_group_or_members(self, current_user_id: str, group_id: Optional[str] = None) -> GroupOverviewResponse:
        if current_user_id not in self.storage.users:
            raise UserNotFoundError(f"User {current_user_id} not found")

        user_groups = [
            g for g in self.storage.groups.values()
            if self._is_member(g, current_user_id)
        ]
        summaries = [
            GroupSummary(
                id=g["id"], name=g["name"], description=g.get("description"),
                member_count=len(g["members"]),
            )
            for g in user_groups
        ]

        if group_id is None:
            return GroupOverviewResponse(selected_group=None, groups=summaries)

        selected = next((g for g in user_groups if g["id"] == group_id), None)
        if selected is None:
            raise GroupNotFoundError("Group not found or you're not a member")

        return GroupOverviewResponse(
            selected_group=GroupDetail(
                id=selected["id"], name=selected["name"],
                description=selected.get("description"),
                created_by=selected.get("created_by"),
                members=self._member_details(selected),
            ),
            groups=summaries,
        )

    def get_group_expenses(self, current_user_id: str, group_id: str) -> GroupExpensesResponse:
        group = self._get_group_for_member(current_user_id, group_id)

        members = self._member_details(group)
        expenses = [Expense(**e) for e in self.storage.group_records(self.storage.expenses, group_id)]
        settlements = [Settlement(**s) for s in self.storage.group_records(self.storage.settlements, group_id)]
        self._validate_records(expenses, settlements)

        report = compute_group_balances(members, expenses, settlements)
        logger.info(
            "Computed balances for group %s: %d members, %d expenses, %d settlements",
            group_id, len(members), len(expenses), len(settlements),
        )

        return GroupExpensesResponse(
            group=GroupInfo(id=group["id"], name=group["name"], description=group.get("description")),
            members=report.members,
            expenses=expenses,
            settlements=settlements,
            balances=report.balances,
            user_lookup_map=report.user_lookup_map,
        )

    def summarize_group(self, current_user_id: str, group_id: str) -> SpendingSummaryResponse:
        report = self.get_group_expenses(current_user_id, group_id)
        text, source = self.summarizer.summarize(report)
        return SpendingSummaryResponse(group_id=group_id, summary=text, generated_by=source)

    def compute_balances(self, request: ComputeBalancesRequest) -> BalanceReport:
        member_ids = [m.id for m in request.members]
        if len(set(member_ids)) != len(member_ids):
            raise DataIntegrityError("Member roster lists the same member id more than once")
        self._validate_records(request.expenses, request.settlements)
        return compute_group_balances(request.members, request.expenses, request.settlements)

    def add_expense(self, current_user_id: str, group_id: str, request: CreateExpenseRequest) -> Expense:
        group = self._get_group_for_member(current_user_id, group_id)

        if not request.splits:
            raise DataIntegrityError("An expense needs at least one split")
        for member_id in [request.payer_id] + [s.member_id for s in request.splits]:
            if not self._is_member(group, member_id):
                raise NotGroupMemberError(f"User {member_id} is not a member of group {group_id}")

        expense = Expense(
            id=str(uuid4()), group_id=group_id,
            description=request.description, amount=request.amount,
            payer_id=request.payer_id, splits=request.splits,
            created_by=current_user_id, created_at=datetime.now(timezone.utc),
        )
        self._validate_records([expense], [])

        self.storage.save(self.storage.expenses, expense.model_dump())
        logger.info("Recorded expense %s in group %s", expense.id, group_id)
        return expense

    def record_settlement(self, current_user_id: str, group_id: str, request: CreateSettlementRequest) -> Settlement:
        group = self._get_group_for_member(current_user_id, group_id)

        for member_id in (request.payer_id, request.receiver_id):
            if not self._is_member(group, member_id):
                raise NotGroupMemberError(f"User {member_id} is not a member of group {group_id}")
        if request.payer_id == request.receiver_id:
            raise DataIntegrityError("A settlement needs two different members")
        self._check_amount(request.amount, "settlement")
        if to_minor_units(request.amount) == 0:
            raise DataIntegrityError("Settlement amount rounds to zero")

        settlement = Settlement(
            id=str(uuid4()), group_id=group_id,
            payer_id=request.payer_id, receiver_id=request.receiver_id,
            amount=request.amount, note=request.note,
            created_by=current_user_id, created_at=datetime.now(timezone.utc),
        )
        self.storage.save(self.storage.settlements, settlement.model_dump())
        logger.info("Recorded settlement %s in group %s", settlement.id, group_id)
        return settlement

    def _get_group_for_member(self, current_user_id: str, group_id: str) -> dict:
        group = self.storage.groups.get(group_id)
        if not group:
            raise GroupNotFoundError(f"Group {group_id} not found")
        if not self._is_member(group, current_user_id):
            raise NotGroupMemberError("You are not a member of this group")
        return group

    def _member_details(self, group: dict) -> list[Member]:
        members = []
        for membership in group["members"]:
            user = self.storage.users.get(membership["user_id"])
            if not user:
                logger.debug("Skipping deleted user %s in group %s", membership["user_id"], group["id"])
                continue
            members.append(Member(
                id=user["id"], name=user["name"], email=user.get("email"),
                image_url=user.get("image_url"), role=membership.get("role"),
            ))
        return members

    @staticmethod
    def _is_member(group: dict, user_id: str) -> bool:
        return any(m["user_id"] == user_id for m in group["members"])

    def _validate_records(self, expenses: Iterable[Expense], settlements: Iterable[Settlement]) -> None:
        for expense in expenses:
            self._check_amount(expense.amount, f"expense {expense.id}")
            for split in expense.splits:
                self._check_amount(split.amount, f"split of {split.member_id} in expense {expense.id}")
        for settlement in settlements:
            self._check_amount(settlement.amount, f"settlement {settlement.id}")

    @staticmethod
    def _check_amount(amount: Decimal, what: str) -> None:
        if not amount.is_finite():
            raise DataIntegrityError(f"Amount of {what} is not a finite number")
        if amount < 0:
            raise DataIntegrityError(f"Amount of {what} cannot be negative")
