import logging
import threading
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from .engine import compute_summary
from .models import (
    AddMemberRequest,
    CreateExpenseRequest,
    CreateGroupRequest,
    Expense,
    ExpenseRecord,
    Group,
    GroupSnapshot,
    RecordSettlementRequest,
    RegisterUserRequest,
    SettlementRecord,
    Summary,
    User,
)


logger = logging.getLogger(__name__)


class GroupServiceError(Exception):
    pass


class UserNotFoundError(GroupServiceError):
    pass


class GroupNotFoundError(GroupServiceError):
    pass


class DuplicateEmailError(GroupServiceError):
    pass


class MembershipError(GroupServiceError):
    pass


class AlreadyMemberError(MembershipError):
    pass


class NotAMemberError(MembershipError):
    pass


class SettlementNotAllowedError(GroupServiceError):
    pass


class InMemoryStorage:
    def __init__(self):
        self.users: dict[UUID, dict] = {}
        self.groups: dict[UUID, dict] = {}
        self.memberships: dict[UUID, list[UUID]] = {}
        self.expenses: dict[UUID, dict] = {}
        self.settlements: dict[UUID, dict] = {}
        self.email_index: dict[str, UUID] = {}
        self.lock = threading.Lock()


class GroupService:
    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    # --- Users ---

    def register_user(self, request: RegisterUserRequest) -> User:
        email_key = request.email.strip().lower()
        with self.storage.lock:
            if email_key in self.storage.email_index:
                raise DuplicateEmailError(f"Email {request.email} is already registered")

            user_data = {
                "id": uuid4(),
                "name": request.name,
                "email": request.email.strip(),
                "created_at": datetime.now(timezone.utc),
            }
            self.storage.users[user_data["id"]] = user_data
            self.storage.email_index[email_key] = user_data["id"]

        logger.info("Registered user %s", user_data["id"])
        return User(**user_data)

    def get_user(self, user_id: UUID) -> User:
        user_data = self.storage.users.get(user_id)
        if not user_data:
            raise UserNotFoundError(f"User {user_id} not found")
        return User(**user_data)

    def list_users(self) -> list[User]:
        return [User(**u) for u in self.storage.users.values()]

    # --- Groups ---

    def create_group(self, request: CreateGroupRequest) -> Group:
        member_ids = list(dict.fromkeys(request.user_ids))
        with self.storage.lock:
            for user_id in member_ids:
                if user_id not in self.storage.users:
                    raise UserNotFoundError(f"User {user_id} not found")

            group_data = {
                "id": uuid4(),
                "name": request.name,
                "created_at": datetime.now(timezone.utc),
            }
            self.storage.groups[group_data["id"]] = group_data
            self.storage.memberships[group_data["id"]] = member_ids
            group = self._build_group(group_data["id"])

        logger.info("Created group %s with %d members", group.id, len(member_ids))
        return group

    def add_member(self, group_id: UUID, request: AddMemberRequest) -> Group:
        with self.storage.lock:
            self._require_group(group_id)
            if request.user_id not in self.storage.users:
                raise UserNotFoundError(f"User {request.user_id} not found")

            members = self.storage.memberships[group_id]
            if request.user_id in members:
                raise AlreadyMemberError(f"User {request.user_id} is already a member of group {group_id}")
            members.append(request.user_id)
            group = self._build_group(group_id)

        logger.info("Added user %s to group %s", request.user_id, group_id)
        return group

    def get_group(self, group_id: UUID) -> Group:
        with self.storage.lock:
            self._require_group(group_id)
            return self._build_group(group_id)

    def list_groups(self, user_id: Optional[UUID] = None) -> list[Group]:
        with self.storage.lock:
            group_ids = [
                gid for gid, members in self.storage.memberships.items()
                if user_id is None or user_id in members
            ]
            return [self._build_group(gid) for gid in group_ids]

    # --- Ledger writes ---

    def add_expense(self, group_id: UUID, request: CreateExpenseRequest) -> ExpenseRecord:
        with self.storage.lock:
            self._require_member(group_id, request.paid_by_id)

            expense_data = {
                "id": uuid4(),
                "group_id": group_id,
                "description": request.description,
                "amount": request.amount,
                "paid_by_id": request.paid_by_id,
                "created_at": datetime.now(timezone.utc),
            }
            self.storage.expenses[expense_data["id"]] = expense_data

        logger.info("Recorded expense of %s in group %s paid by %s",
                    request.amount, group_id, request.paid_by_id)
        return ExpenseRecord(**expense_data)

    def record_settlement(self, group_id: UUID, request: RecordSettlementRequest) -> SettlementRecord:
        """Record that ``from_id`` paid ``to_id`` outside the group pool.

        The pair of ledger entries is stored as a single record, so readers
        see both halves or neither.
        """
        if request.from_id == request.to_id:
            raise SettlementNotAllowedError("A member cannot settle with themselves")

        with self.storage.lock:
            self._require_member(group_id, request.from_id)
            self._require_member(group_id, request.to_id)

            settlement_data = {
                "id": uuid4(),
                "group_id": group_id,
                "from_id": request.from_id,
                "to_id": request.to_id,
                "amount": request.amount,
                "created_at": datetime.now(timezone.utc),
            }
            self.storage.settlements[settlement_data["id"]] = settlement_data

        logger.info("Recorded settlement of %s in group %s from %s to %s",
                    request.amount, group_id, request.from_id, request.to_id)
        return SettlementRecord(**settlement_data)

    # --- Reads ---

    def snapshot(self, group_id: UUID) -> GroupSnapshot:
        with self.storage.lock:
            _, snapshot = self._read_snapshot(group_id)
        return snapshot

    def get_summary(self, group_id: UUID) -> tuple[Group, Summary]:
        with self.storage.lock:
            group, snapshot = self._read_snapshot(group_id)
        summary = compute_summary(snapshot.members, snapshot.entries)
        return group, summary

    # --- Helpers (caller holds the lock) ---

    def _read_snapshot(self, group_id: UUID) -> tuple[Group, GroupSnapshot]:
        self._require_group(group_id)
        group = self._build_group(group_id)

        entries = [
            Expense(member_id=e["paid_by_id"], amount=e["amount"]).ledger_entry()
            for e in self._group_rows(self.storage.expenses, group_id)
        ]
        for s in self._group_rows(self.storage.settlements, group_id):
            entries.extend(SettlementRecord(**s).transfer().ledger_entries())

        return group, GroupSnapshot(members=[u.as_member() for u in group.members], entries=entries)

    def _require_group(self, group_id: UUID) -> None:
        if group_id not in self.storage.groups:
            raise GroupNotFoundError(f"Group {group_id} not found")

    def _require_member(self, group_id: UUID, user_id: UUID) -> None:
        self._require_group(group_id)
        if user_id not in self.storage.memberships[group_id]:
            raise NotAMemberError(f"User {user_id} is not a member of group {group_id}")

    def _build_group(self, group_id: UUID) -> Group:
        group_data = self.storage.groups[group_id]
        return Group(
            id=group_data["id"],
            name=group_data["name"],
            created_at=group_data["created_at"],
            members=[User(**self.storage.users[uid]) for uid in self.storage.memberships[group_id]],
        )

    @staticmethod
    def _group_rows(table: dict[UUID, dict], group_id: UUID) -> list[dict]:
        rows = [row for row in table.values() if row["group_id"] == group_id]
        rows.sort(key=lambda row: row["created_at"])
        return rows
