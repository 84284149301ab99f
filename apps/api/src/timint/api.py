from fastapi import APIRouter

from timint.modules.auth import router as auth_router
from timint.modules.badges import router as badges_router
from timint.modules.certificates import router as certificates_router
from timint.modules.registrations import admin_router as admin_registrations_router
from timint.modules.registrations import guardian_router
from timint.modules.registrations import router as registrations_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(registrations_router, prefix="/registrations", tags=["Registrations"])

api_router.include_router(guardian_router, prefix="/guardian", tags=["Guardian Consent"])

api_router.include_router(
    admin_registrations_router,
    prefix="/admin/registrations",
    tags=["Admin - Registrations"],
)

api_router.include_router(badges_router, prefix="/badges", tags=["Badges"])

api_router.include_router(certificates_router, prefix="/certificates", tags=["Certificates"])
