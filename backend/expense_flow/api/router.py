from fastapi import APIRouter

from expense_flow.api.auth import auth_router
from expense_flow.api.expenses import expenses_router
from expense_flow.api.reports import reports_router
from expense_flow.api.users import users_router

api_router = APIRouter(prefix="/api")
api_router.include_router(auth_router)
api_router.include_router(expenses_router)
api_router.include_router(users_router)
api_router.include_router(reports_router)
