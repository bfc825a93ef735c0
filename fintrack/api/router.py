from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from fintrack.api.deps import get_current_user
from fintrack.core.database import get_db
from fintrack.models.user import User
from fintrack.schemas.account import (
    AccountCreate, AccountResponse, BalanceResponse, CategoryCreate, CategoryResponse,
)
from fintrack.schemas.analytics import SummaryResponse, CategoryBreakdownItem, MonthlyStatsResponse
from fintrack.schemas.bitcoin import BitcoinDashboardResponse
from fintrack.schemas.receipt import ReceiptCommit, ReceiptExtraction
from fintrack.schemas.transaction import (
    TransactionCreate, TransactionUpdate, TransactionResponse, TransactionListResponse, DeleteResponse,
)
from fintrack.services.accounts import AccountService, CategoryService
from fintrack.services.balance import BalanceService
from fintrack.services.bitcoin import BitcoinDashboard
from fintrack.services.ledger import TransactionRepository
from fintrack.services.receipts import ReceiptExtractor, ReceiptService
from fintrack.services.summary import SummaryEngine

api_router = APIRouter()


def get_receipt_extractor() -> ReceiptExtractor:
    return ReceiptExtractor()


# --- Transactions ---

@api_router.post("/transactions", response_model=TransactionResponse,
                 status_code=status.HTTP_201_CREATED, tags=["Transactions"])
async def add_transaction(trx: TransactionCreate, db: AsyncSession = Depends(get_db),
                          user: User = Depends(get_current_user)):
    db_obj = await TransactionRepository.create(
        db,
        user,
        account=trx.account,
        category=trx.category,
        amount=trx.amount,
        trx_type=trx.type,
        trx_date=trx.date,
        status=trx.status,
        description=trx.description,
        notes=trx.notes,
        receipt_url=trx.receipt_url,
    )
    return TransactionResponse.from_orm_obj(db_obj)


@api_router.get("/transactions", tags=["Transactions"])
async def get_transactions(
        limit: Optional[int] = Query(None, ge=0, le=1000),
        offset: Optional[int] = Query(None, ge=0),
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        summary: bool = Query(False),
        cleared_only: Optional[bool] = Query(None, alias="clearedOnly"),
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user)
):
    if summary:
        return await SummaryEngine.summarize(db, user, start_date, end_date, cleared_only)

    rows = await TransactionRepository.list(
        db, user, limit=limit, offset=offset, start_date=start_date, end_date=end_date
    )
    total = await TransactionRepository.count(db, user, start_date=start_date, end_date=end_date)
    return TransactionListResponse(
        transactions=[TransactionResponse.from_orm_obj(t) for t in rows],
        total=total
    )


@api_router.get("/transactions/{transaction_id}", response_model=TransactionResponse, tags=["Transactions"])
async def get_transaction(transaction_id: int, db: AsyncSession = Depends(get_db),
                          user: User = Depends(get_current_user)):
    return TransactionResponse.from_orm_obj(await TransactionRepository.get(db, transaction_id, user))


@api_router.put("/transactions/{transaction_id}", response_model=TransactionResponse, tags=["Transactions"])
async def update_transaction(transaction_id: int, payload: TransactionUpdate,
                             db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    db_obj = await TransactionRepository.update(db, transaction_id, user, payload.to_updates())
    return TransactionResponse.from_orm_obj(db_obj)


@api_router.delete("/transactions/{transaction_id}", response_model=DeleteResponse, tags=["Transactions"])
async def delete_transaction(transaction_id: int, db: AsyncSession = Depends(get_db),
                             user: User = Depends(get_current_user)):
    await TransactionRepository.delete(db, transaction_id, user)
    return DeleteResponse(success=True, message="Transaction deleted successfully")


# --- Analytics ---

@api_router.get("/analytics/summary", response_model=SummaryResponse, tags=["Analytics"])
async def get_summary(
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        cleared_only: Optional[bool] = Query(None, alias="clearedOnly"),
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user)
):
    return await SummaryEngine.summarize(db, user, start_date, end_date, cleared_only)


@api_router.get("/analytics/categories", response_model=List[CategoryBreakdownItem], tags=["Analytics"])
async def get_category_breakdown(
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
        cleared_only: Optional[bool] = Query(None, alias="clearedOnly"),
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user)
):
    return await SummaryEngine.category_breakdown(db, user, start_date, end_date, cleared_only)


@api_router.get("/analytics/monthly", response_model=MonthlyStatsResponse, tags=["Analytics"])
async def get_monthly_stats(
        months: int = Query(6, ge=1, le=36),
        cleared_only: Optional[bool] = Query(None, alias="clearedOnly"),
        db: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user)
):
    return await SummaryEngine.monthly_stats(db, user, months=months, cleared_only=cleared_only)


# --- Accounts & categories ---

@api_router.get("/balance", response_model=BalanceResponse, tags=["Accounts"])
async def get_balance(monthly: bool = Query(False), db: AsyncSession = Depends(get_db),
                      user: User = Depends(get_current_user)):
    data = await BalanceService.get_balances(db, user, include_monthly=monthly)
    return BalanceResponse(
        total_balance=float(data["total_balance"]),
        accounts=[{**a, "balance": float(a["balance"])} for a in data["accounts"]],
        monthly_expenditure=float(data["monthly_expenditure"]) if monthly else None
    )


@api_router.get("/accounts", response_model=List[AccountResponse], tags=["Accounts"])
async def get_accounts(include_inactive: bool = Query(True, alias="includeInactive"),
                       db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    accounts = await AccountService.list_accounts(db, user, include_inactive=include_inactive)
    return [AccountResponse.model_validate(a) for a in accounts]


@api_router.post("/accounts", response_model=AccountResponse,
                 status_code=status.HTTP_201_CREATED, tags=["Accounts"])
async def add_account(payload: AccountCreate, db: AsyncSession = Depends(get_db),
                      user: User = Depends(get_current_user)):
    account = await AccountService.create_account(db, user, payload.name, payload.kind, payload.currency)
    return AccountResponse.model_validate(account)


@api_router.post("/accounts/{account_id}/deactivate", response_model=AccountResponse, tags=["Accounts"])
async def deactivate_account(account_id: int, db: AsyncSession = Depends(get_db),
                             user: User = Depends(get_current_user)):
    return AccountResponse.model_validate(await AccountService.deactivate_account(db, user, account_id))


@api_router.delete("/accounts/{account_id}", response_model=DeleteResponse, tags=["Accounts"])
async def delete_account(account_id: int, db: AsyncSession = Depends(get_db),
                         user: User = Depends(get_current_user)):
    await AccountService.delete_account(db, user, account_id)
    return DeleteResponse(success=True, message="Account deleted successfully")


@api_router.get("/categories", response_model=List[CategoryResponse], tags=["Accounts"])
async def get_categories(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return [CategoryResponse.model_validate(c) for c in await CategoryService.list_categories(db, user)]


@api_router.post("/categories", response_model=CategoryResponse,
                 status_code=status.HTTP_201_CREATED, tags=["Accounts"])
async def add_category(payload: CategoryCreate, db: AsyncSession = Depends(get_db),
                       user: User = Depends(get_current_user)):
    category = await CategoryService.create_category(db, user, payload.name, payload.icon, payload.color)
    return CategoryResponse.model_validate(category)


@api_router.delete("/categories/{category_id}", response_model=DeleteResponse, tags=["Accounts"])
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db),
                          user: User = Depends(get_current_user)):
    await CategoryService.delete_category(db, user, category_id)
    return DeleteResponse(success=True, message="Category deleted successfully")


# --- Receipts ---

@api_router.post("/receipts/scan", response_model=ReceiptExtraction, tags=["Receipts"])
async def scan_receipt(file: UploadFile = File(...),
                       extractor: ReceiptExtractor = Depends(get_receipt_extractor),
                       user: User = Depends(get_current_user)):
    content = await file.read()
    return await extractor.extract(content, file.content_type)


@api_router.post("/receipts/transactions", response_model=TransactionResponse,
                 status_code=status.HTTP_201_CREATED, tags=["Receipts"])
async def save_receipt(payload: ReceiptCommit, db: AsyncSession = Depends(get_db),
                       user: User = Depends(get_current_user)):
    db_obj = await ReceiptService.save_candidate(
        db,
        user,
        payload.receipt,
        account=payload.account,
        category=payload.category,
        status=payload.status,
        notes=payload.notes,
        receipt_url=payload.receipt_url,
    )
    return TransactionResponse.from_orm_obj(db_obj)


# --- Bitcoin ---

@api_router.get("/bitcoin/dashboard", response_model=BitcoinDashboardResponse, tags=["Bitcoin"])
async def get_bitcoin_dashboard():
    return BitcoinDashboard.build()
