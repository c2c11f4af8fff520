import logging

from fastapi import FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import config
from .models import (
    BalanceReport, ComputeBalancesRequest, CreateExpenseRequest, CreateSettlementRequest,
    Expense, GroupExpensesResponse, GroupOverviewResponse, Settlement, SpendingSummaryResponse,
)
from .service import (
    GroupBalanceService, BalanceServiceError, GroupNotFoundError,
    UserNotFoundError, NotGroupMemberError, DataIntegrityError,
)

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(
    title="Group Balances API",
    description="Shared expenses, settlements and netted who-owes-whom balances for groups",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

balance_service = GroupBalanceService()


def _http_error(e: BalanceServiceError) -> HTTPException:
    if isinstance(e, (GroupNotFoundError, UserNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, NotGroupMemberError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "group-balances"}


@app.get("/groups", response_model=GroupOverviewResponse, tags=["Groups"])
def list_groups(x_user_id: str = Header(...)) -> GroupOverviewResponse:
    try:
        return balance_service.get_group_or_members(x_user_id)
    except BalanceServiceError as e:
        raise _http_error(e)


@app.get("/groups/{group_id}", response_model=GroupOverviewResponse, tags=["Groups"])
def get_group(group_id: str, x_user_id: str = Header(...)) -> GroupOverviewResponse:
    try:
        return balance_service.get_group_or_members(x_user_id, group_id)
    except BalanceServiceError as e:
        raise _http_error(e)


@app.get("/groups/{group_id}/expenses", response_model=GroupExpensesResponse, tags=["Balances"])
def get_group_expenses(group_id: str, x_user_id: str = Header(...)) -> GroupExpensesResponse:
    try:
        return balance_service.get_group_expenses(x_user_id, group_id)
    except BalanceServiceError as e:
        raise _http_error(e)


@app.post("/groups/{group_id}/expenses", response_model=Expense, status_code=status.HTTP_201_CREATED, tags=["Expenses"])
def create_expense(group_id: str, request: CreateExpenseRequest, x_user_id: str = Header(...)) -> Expense:
    try:
        return balance_service.add_expense(x_user_id, group_id, request)
    except BalanceServiceError as e:
        raise _http_error(e)


@app.post("/groups/{group_id}/settlements", response_model=Settlement, status_code=status.HTTP_201_CREATED, tags=["Settlements"])
def create_settlement(group_id: str, request: CreateSettlementRequest, x_user_id: str = Header(...)) -> Settlement:
    try:
        return balance_service.record_settlement(x_user_id, group_id, request)
    except BalanceServiceError as e:
        raise _http_error(e)


@app.get("/groups/{group_id}/summary", response_model=SpendingSummaryResponse, tags=["Balances"])
def get_group_summary(group_id: str, x_user_id: str = Header(...)) -> SpendingSummaryResponse:
    try:
        return balance_service.summarize_group(x_user_id, group_id)
    except BalanceServiceError as e:
        raise _http_error(e)


@app.post("/balances/compute", response_model=BalanceReport, tags=["Balances"])
def compute_balances(request: ComputeBalancesRequest) -> BalanceReport:
    try:
        return balance_service.compute_balances(request)
    except DataIntegrityError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
