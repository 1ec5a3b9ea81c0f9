import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .engine import ArithmeticNotReconciled, BalanceEngineError
from .models import (
    AddMemberRequest, CreateExpenseRequest, CreateGroupRequest, ExpenseRecord,
    Group, GroupSummaryResponse, RecordSettlementRequest, RegisterUserRequest,
    SettlementRecord, SummaryTransaction, User,
)
from .service import (
    AlreadyMemberError, DuplicateEmailError, GroupNotFoundError, GroupService,
    GroupServiceError, UserNotFoundError,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def get_group_service(request: Request) -> GroupService:
    return request.app.state.group_service


def get_caller_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[UUID]:
    """Identity of the acting user, resolved upstream and passed as a header.

    Missing or malformed identities are treated as anonymous.
    """
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        logger.warning("Ignoring malformed X-User-Id header %r", x_user_id)
        return None


@router.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": config.SERVICE_NAME}


@router.post("/users", response_model=User, status_code=status.HTTP_201_CREATED, tags=["Users"])
def register_user(request: RegisterUserRequest, service: GroupService = Depends(get_group_service)) -> User:
    try:
        return service.register_user(request)
    except DuplicateEmailError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/users", response_model=list[User], tags=["Users"])
def list_users(service: GroupService = Depends(get_group_service)) -> list[User]:
    return service.list_users()


@router.get("/users/{user_id}", response_model=User, tags=["Users"])
def get_user(user_id: UUID, service: GroupService = Depends(get_group_service)) -> User:
    try:
        return service.get_user(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/groups", response_model=Group, status_code=status.HTTP_201_CREATED, tags=["Groups"])
def create_group(request: CreateGroupRequest, service: GroupService = Depends(get_group_service)) -> Group:
    try:
        return service.create_group(request)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/groups", response_model=list[Group], tags=["Groups"])
def list_groups(
    user_id: Optional[UUID] = Query(default=None, alias="userId"),
    service: GroupService = Depends(get_group_service),
) -> list[Group]:
    return service.list_groups(user_id)


@router.get("/groups/{group_id}", response_model=Group, tags=["Groups"])
def get_group(group_id: UUID, service: GroupService = Depends(get_group_service)) -> Group:
    try:
        return service.get_group(group_id)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/groups/{group_id}/members", response_model=Group, tags=["Groups"])
def add_member(
    group_id: UUID, request: AddMemberRequest, service: GroupService = Depends(get_group_service)
) -> Group:
    try:
        return service.add_member(group_id, request)
    except (GroupNotFoundError, UserNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AlreadyMemberError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/groups/{group_id}/expenses", response_model=ExpenseRecord,
             status_code=status.HTTP_201_CREATED, tags=["Ledger"])
def add_expense(
    group_id: UUID, request: CreateExpenseRequest, service: GroupService = Depends(get_group_service)
) -> ExpenseRecord:
    try:
        return service.add_expense(group_id, request)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except GroupServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/groups/{group_id}/settlements", response_model=SettlementRecord,
             status_code=status.HTTP_201_CREATED, tags=["Ledger"])
def record_settlement(
    group_id: UUID,
    request: RecordSettlementRequest,
    caller_id: Optional[UUID] = Depends(get_caller_id),
    service: GroupService = Depends(get_group_service),
) -> SettlementRecord:
    if caller_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if caller_id != request.from_id:
        logger.warning("User %s tried to settle on behalf of %s", caller_id, request.from_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Only the paying member can record this settlement")
    try:
        return service.record_settlement(group_id, request)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except GroupServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/groups/{group_id}/summary", response_model=GroupSummaryResponse, tags=["Ledger"])
def get_group_summary(
    group_id: UUID,
    caller_id: Optional[UUID] = Depends(get_caller_id),
    service: GroupService = Depends(get_group_service),
) -> GroupSummaryResponse:
    try:
        group, summary = service.get_summary(group_id)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ArithmeticNotReconciled as e:
        logger.error("Summary for group %s did not reconcile: %s", group_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except BalanceEngineError as e:
        logger.warning("Summary for group %s rejected: %s", group_id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    transactions = [
        SummaryTransaction(
            **transfer.model_dump(),
            can_settle=caller_id is not None and transfer.from_member == caller_id,
        )
        for transfer in summary.transfers
    ]
    return GroupSummaryResponse(
        group=group.name,
        total_expense=summary.total_expense_pool,
        split_per_head=summary.split_per_head,
        members=summary.balances,
        transactions=transactions,
    )


def create_app(service: Optional[GroupService] = None, root_path: str = "") -> FastAPI:
    app = FastAPI(
        title="Group Settlement API",
        description="Shared expense ledger for groups with balance summaries and suggested settlements",
        version="1.0.0",
        root_path=root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.group_service = service or GroupService()
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    config.configure_logging()
    uvicorn.run(app, host=config.HOST, port=config.PORT)
