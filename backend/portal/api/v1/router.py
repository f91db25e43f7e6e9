from fastapi import APIRouter

from portal.api.v1.endpoints import admin, auth, documents, forms

api_v1_router = APIRouter()

api_v1_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_v1_router.include_router(documents.router, prefix="/documents", tags=["documents"])
api_v1_router.include_router(documents.admin_router, prefix="/admin", tags=["admin"])
api_v1_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_v1_router.include_router(forms.router, prefix="/forms", tags=["forms"])
