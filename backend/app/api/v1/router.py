from fastapi import APIRouter
from app.api.v1.routes import (
    auth,
    admin_resellers,
    admin_transfers,
    admin_recharges,
    admin_customers,
    reseller_portal,
)

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

api_router.include_router(admin_resellers.router, prefix="/admin/resellers", tags=["admin-resellers"])
api_router.include_router(admin_transfers.router, prefix="/admin/transfers", tags=["admin-transfers"])
api_router.include_router(admin_recharges.router, prefix="/admin/recharges", tags=["admin-recharges"])
api_router.include_router(admin_customers.router, prefix="/admin/customers", tags=["admin-customers"])

api_router.include_router(reseller_portal.router, prefix="/reseller", tags=["reseller-portal"])
