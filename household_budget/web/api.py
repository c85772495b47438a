"""FastAPI backend for the household budget web UI."""
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from household_budget.api.budget_service import BudgetService
from household_budget.errors import BudgetError, ExternalServiceError


# Global service instance (for production use)
_service: Optional[BudgetService] = None


def get_service() -> BudgetService:
    """Dependency to get the budget service."""
    global _service
    if _service is None:
        _service = BudgetService()
        _service.__enter__()
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle."""
    yield
    # Cleanup on shutdown
    global _service
    if _service is not None:
        _service.__exit__(None, None, None)
        _service = None


app = FastAPI(
    title="Household Budget API",
    description="Monthly household budget with bills, funds and month sealing",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(BudgetError)
async def budget_error_handler(request: Request, exc: BudgetError):
    """Map domain errors to the same shape as HTTPException."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# === Pydantic Models ===

class BillCreate(BaseModel):
    name: Optional[str] = None
    expected_amount: Optional[float] = None
    month: Optional[str] = None


class BillUpdate(BaseModel):
    name: Optional[str] = None
    expected_amount: Optional[float] = None


class CopyBillsRequest(BaseModel):
    month: Optional[str] = None  # MM/YYYY; defaults to the current month


class FundCreate(BaseModel):
    name: Optional[str] = None


class FundSettingsUpdate(BaseModel):
    display_name: Optional[str] = None
    position: Optional[str] = None  # 'left' or 'right'
    is_visible: Optional[bool] = None
    override_amount: Optional[float] = None  # 0 or null clears the override


class ConnectionCreate(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    account_type: Optional[str] = None
    is_on_budget: Optional[bool] = None


class ConnectionUpdate(BaseModel):
    is_on_budget: Optional[bool] = None
    display_name: Optional[str] = None
    account_type: Optional[str] = None


class TransactionCreate(BaseModel):
    name: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    category: Optional[str] = None
    income_month: Optional[str] = None


class CategorizeRequest(BaseModel):
    category: Optional[str] = None
    income_month: Optional[str] = None


class SplitItem(BaseModel):
    id: Optional[str] = None
    label: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    category: Optional[str] = None
    income_month: Optional[str] = None


class TransactionSplitRequest(BaseModel):
    splits: Optional[List[SplitItem]] = None


class AllocationItem(BaseModel):
    fund_id: Optional[str] = None
    amount: Optional[float] = None


class SealMonthRequest(BaseModel):
    month: Optional[str] = None
    allocations: Optional[List[AllocationItem]] = None


class SavingsTargetUpdate(BaseModel):
    value: Optional[float] = None


class SimpleFinSetupRequest(BaseModel):
    setup_token: Optional[str] = None


# === Summary ===

@app.get("/api/summary")
def get_summary(
    month: Optional[str] = Query(None, description="MM/YYYY, defaults to the current month"),
    service: BudgetService = Depends(get_service)
):
    """Get the monthly summary: income, bills, spending, remaining cash and funds."""
    return service.get_summary(month)


# === Bills ===

@app.get("/api/bills")
def get_bills(
    month: Optional[str] = Query(None),
    service: BudgetService = Depends(get_service)
):
    """Get bills for a month with paid amounts."""
    return service.list_bills(month)


@app.post("/api/bills")
def create_bill(bill: BillCreate, service: BudgetService = Depends(get_service)):
    """Create a bill in a month."""
    return service.create_bill(bill.name, bill.expected_amount, bill.month)


@app.patch("/api/bills/{bill_id}")
def update_bill(bill_id: str, updates: BillUpdate, service: BudgetService = Depends(get_service)):
    """Update a bill's expected amount (or name)."""
    return service.update_bill(bill_id, expected_amount=updates.expected_amount, name=updates.name)


@app.delete("/api/bills/{bill_id}")
def delete_bill(bill_id: str, service: BudgetService = Depends(get_service)):
    service.delete_bill(bill_id)
    return {"ok": True}


@app.post("/api/bills/copy-last-month")
def copy_last_month(
    request: Optional[CopyBillsRequest] = None,
    service: BudgetService = Depends(get_service)
):
    """Roll last month's bills into this month."""
    return service.copy_last_month_bills(request.month if request else None)


# === Funds ===

@app.get("/api/funds")
def get_funds(service: BudgetService = Depends(get_service)):
    """Get all funds with balances and display settings."""
    return service.list_funds()


@app.get("/api/funds/default-allocations")
def get_default_allocations(
    month: Optional[str] = Query(None),
    service: BudgetService = Depends(get_service)
):
    """Suggested split of a month's savings across funds."""
    return service.get_default_allocations(month)


@app.post("/api/funds")
def create_fund(fund: FundCreate, service: BudgetService = Depends(get_service)):
    return service.create_fund(fund.name)


@app.delete("/api/funds/{fund_id}")
def delete_fund(fund_id: str, service: BudgetService = Depends(get_service)):
    """Delete a fund with its allocations and settings."""
    service.delete_fund(fund_id)
    return {"ok": True}


@app.patch("/api/fund-settings/{fund_id}")
def update_fund_settings(
    fund_id: str,
    settings: FundSettingsUpdate,
    service: BudgetService = Depends(get_service)
):
    service.update_fund_settings(
        fund_id,
        settings.display_name,
        settings.position,
        is_visible=settings.is_visible,
        override_amount=settings.override_amount,
    )
    return {"ok": True}


# === Connections ===

@app.get("/api/connections")
def get_connections(service: BudgetService = Depends(get_service)):
    return service.list_connections()


@app.post("/api/connections", status_code=201)
def create_connection(connection: ConnectionCreate, service: BudgetService = Depends(get_service)):
    """Create a manual connection."""
    return service.create_connection(
        connection.id,
        connection.name,
        account_type=connection.account_type,
        is_on_budget=connection.is_on_budget,
    )


@app.patch("/api/connections/{connection_id}")
def update_connection(
    connection_id: str,
    updates: ConnectionUpdate,
    service: BudgetService = Depends(get_service)
):
    """Toggle on-budget or rename a connection."""
    return service.update_connection(
        connection_id,
        is_on_budget=updates.is_on_budget,
        display_name=updates.display_name,
        account_type=updates.account_type,
    )


@app.delete("/api/connections/{connection_id}")
def delete_connection(connection_id: str, service: BudgetService = Depends(get_service)):
    """Delete a connection and all its transactions."""
    service.delete_connection(connection_id)
    return {"ok": True}


@app.get("/api/connections/{connection_id}/transactions")
def get_connection_transactions(connection_id: str, service: BudgetService = Depends(get_service)):
    return service.get_connection_transactions(connection_id)


@app.get("/api/networth")
def get_net_worth(service: BudgetService = Depends(get_service)):
    """Sum of all connection balances."""
    return service.get_net_worth()


# === Transactions ===

@app.get("/api/transactions")
def get_transactions(
    month: Optional[str] = Query(None),
    service: BudgetService = Depends(get_service)
):
    """Get on-budget transactions for a month, newest first."""
    return service.list_transactions(month)


@app.post("/api/transactions")
def create_transaction(txn: TransactionCreate, service: BudgetService = Depends(get_service)):
    """Add a manual transaction."""
    return service.create_transaction(
        txn.name,
        txn.amount,
        txn.date,
        category=txn.category,
        income_month=txn.income_month,
    )


@app.patch("/api/transactions/{txn_id}")
def categorize_transaction(
    txn_id: str,
    request: CategorizeRequest,
    service: BudgetService = Depends(get_service)
):
    """Assign a category token to a transaction."""
    return service.categorize_transaction(txn_id, request.category, request.income_month)


@app.patch("/api/transactions/{txn_id}/split")
def set_transaction_splits(
    txn_id: str,
    request: TransactionSplitRequest,
    service: BudgetService = Depends(get_service)
):
    """Replace a transaction's splits.

    Split amounts may not exceed the transaction amount. Fewer than two
    splits removes the split instead.
    """
    splits = None
    if request.splits is not None:
        splits = [s.model_dump() for s in request.splits]
    return service.set_splits(txn_id, splits)


@app.delete("/api/transactions/{txn_id}/split")
def delete_transaction_splits(txn_id: str, service: BudgetService = Depends(get_service)):
    """Remove all splits from a transaction (unsplit it)."""
    return service.clear_splits(txn_id)


@app.delete("/api/transactions/{txn_id}/split/{split_id}")
def delete_transaction_split(txn_id: str, split_id: str, service: BudgetService = Depends(get_service)):
    return service.delete_split(txn_id, split_id)


# === Month breakdowns ===

@app.get("/api/months/{mm}/{yyyy}/income")
def get_month_income(mm: str, yyyy: str, service: BudgetService = Depends(get_service)):
    """Income transactions attributed to a month."""
    return service.get_income_transactions(f"{mm}/{yyyy}")


@app.get("/api/months/{mm}/{yyyy}/spending")
def get_month_spending(mm: str, yyyy: str, service: BudgetService = Depends(get_service)):
    """Everything-else spending for a month."""
    return service.get_spending(f"{mm}/{yyyy}")


@app.get("/api/months/{mm}/{yyyy}/fund-activity")
def get_month_fund_activity(mm: str, yyyy: str, service: BudgetService = Depends(get_service)):
    return service.get_fund_activity(f"{mm}/{yyyy}")


# === Sealing ===

@app.post("/api/seal-month")
def seal_month(request: SealMonthRequest, service: BudgetService = Depends(get_service)):
    """Seal a month and allocate its savings into funds."""
    allocations = None
    if request.allocations is not None:
        allocations = [a.model_dump() for a in request.allocations]
    return service.seal_month(request.month, allocations)


# === Settings ===

@app.get("/api/settings/savings-target")
def get_savings_target(service: BudgetService = Depends(get_service)):
    return {"value": service.get_savings_target()}


@app.put("/api/settings/savings-target")
def set_savings_target(request: SavingsTargetUpdate, service: BudgetService = Depends(get_service)):
    return {"value": service.set_savings_target(request.value)}


# === SimpleFIN ===

@app.post("/api/simplefin/setup")
def simplefin_setup(request: SimpleFinSetupRequest, service: BudgetService = Depends(get_service)):
    """Claim a SimpleFIN setup token and store the access URL."""
    try:
        service.setup_simplefin(request.setup_token)
    except ExternalServiceError as e:
        # A bad token is the user's input, not an upstream outage
        raise HTTPException(status_code=400, detail=e.message)
    return {"ok": True}


@app.post("/api/simplefin/sync")
def simplefin_sync(service: BudgetService = Depends(get_service)) -> Dict[str, Any]:
    """Import balances and new transactions from the bank."""
    return service.sync()


@app.post("/api/simplefin/disconnect")
def simplefin_disconnect(service: BudgetService = Depends(get_service)):
    service.disconnect_simplefin()
    return {"ok": True}
