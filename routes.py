"""API Routes for expenses"""
from fastapi import APIRouter, Body, Depends, Query, Request, status
from typing import Annotated, Any, Optional
from services import expenses_service
from services.errors import ExpenseError, StoreError
from motor.motor_asyncio import AsyncIOMotorCollection
import logging

logger = logging.getLogger(__name__)

# --- Dependency Functions ---
def enforce_rate_limit(request: Request) -> None:
    """Checks the request against the app's slowapi limiter, when RATE_LIMIT configured one."""
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is not None:
        # Same check SlowAPIMiddleware runs, keyed by URL; raises RateLimitExceeded
        limiter._check_request_limit(request, None, True)

def get_expenses_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB expenses collection from the application state."""
    collection = getattr(request.app.state, "expenses_collection", None)
    if collection is None:
        logger.error("Expenses collection not found in application state. Check MongoDB connection.")
        raise StoreError("Database service not available.")
    return collection

# Type hint for the dependency
ExpensesCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_expenses_collection)]

# --- API Routes ---

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])

@router.get("/expenses", summary="List Expenses", description="Retrieves expenses, optionally filtered by category and date range. Sorted by date descending by default.")
async def get_expenses(
    collection: ExpensesCollectionDep,
    category: Optional[str] = Query(None, description="Only expenses of this category."),
    start_date: Optional[str] = Query(None, alias="startDate", description="Earliest date (ISO-8601), inclusive."),
    end_date: Optional[str] = Query(None, alias="endDate", description="Latest date (ISO-8601), inclusive."),
    sort: Optional[str] = Query(None, description="Sort as 'field:asc' or 'field:desc', e.g. 'amount:asc'."),
):
    params = {"category": category, "startDate": start_date, "endDate": end_date, "sort": sort}
    try:
        result = await expenses_service.list_expenses(collection, params)
    except ExpenseError as e:
        logger.error(f"Error getting expenses: {e}")
        raise
    return {
        "success": True,
        "count": result["count"],
        "total": result["total"],
        "data": [expense.to_response() for expense in result["data"]],
    }

@router.get("/expenses/stats", summary="Expense Statistics", description="Grand total, totals by category and totals by month of the current year.")
async def get_expense_stats(collection: ExpensesCollectionDep):
    try:
        stats = await expenses_service.get_statistics(collection)
    except ExpenseError as e:
        logger.error(f"Error getting expense stats: {e}")
        raise
    return {"success": True, "data": stats}

@router.get("/expenses/{expense_id}", summary="Get Expense")
async def get_expense(expense_id: str, collection: ExpensesCollectionDep):
    expense = await expenses_service.get_expense(collection, expense_id)
    logger.info(f"Retrieved expense with id: {expense_id}")
    return {"success": True, "data": expense.to_response()}

@router.post("/expenses", status_code=status.HTTP_201_CREATED, summary="Create Expense")
async def create_expense(collection: ExpensesCollectionDep, draft: Annotated[Any, Body()] = None):
    try:
        expense = await expenses_service.create_expense(collection, draft)
    except ExpenseError as e:
        logger.error(f"Error creating expense: {e}")
        raise
    return {"success": True, "data": expense.to_response()}

@router.put("/expenses/{expense_id}", summary="Update Expense", description="Partially updates an expense; fields not supplied keep their values.")
async def update_expense(expense_id: str, collection: ExpensesCollectionDep, changes: Annotated[Any, Body()] = None):
    try:
        expense = await expenses_service.update_expense(collection, expense_id, changes)
    except ExpenseError as e:
        logger.error(f"Error updating expense: {e}")
        raise
    return {"success": True, "data": expense.to_response()}

@router.delete("/expenses/{expense_id}", summary="Delete Expense")
async def delete_expense(expense_id: str, collection: ExpensesCollectionDep):
    try:
        await expenses_service.delete_expense(collection, expense_id)
    except ExpenseError as e:
        logger.error(f"Error deleting expense: {e}")
        raise
    return {"success": True, "data": {}}
