from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from loan_engine.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

basic_auth = HTTPBasic(auto_error=False)


def credentials_match(
    username: str, password: str, expected_username: str, expected_password: str
) -> bool:
    # Compare both halves so timing does not reveal which one was wrong.
    username_ok = hmac.compare_digest(username.encode("utf-8"), expected_username.encode("utf-8"))
    password_ok = hmac.compare_digest(password.encode("utf-8"), expected_password.encode("utf-8"))
    return username_ok and password_ok


def require_basic_auth(
    credentials: Annotated[HTTPBasicCredentials | None, Depends(basic_auth)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    if credentials is None or not credentials_match(
        credentials.username,
        credentials.password,
        settings.auth_username,
        settings.auth_password,
    ):
        logger.info("Rejected request with invalid basic credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "Unauthorized"},
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
