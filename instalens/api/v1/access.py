"""Access-code check used by the frontend gate."""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from instalens.auth.access import code_matches
from instalens.config import settings

router = APIRouter()


class AccessRequest(BaseModel):
    code: Optional[str] = None


@router.post("/access")
async def check_access(request: AccessRequest):
    return {"granted": code_matches(request.code, settings.access_code)}
