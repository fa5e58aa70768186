"""V1 API router aggregation."""

from fastapi import APIRouter

from teamchat.api.v1.channels import router as channels_router
from teamchat.api.v1.direct_messages import router as direct_messages_router
from teamchat.api.v1.messages import router as messages_router
from teamchat.api.v1.realtime import router as realtime_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(channels_router)
v1_router.include_router(messages_router)
v1_router.include_router(direct_messages_router)
v1_router.include_router(realtime_router)
