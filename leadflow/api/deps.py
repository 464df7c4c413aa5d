"""Shared route dependencies: runtime lookup and access checks."""

import hmac

from fastapi import Header, HTTPException, Request

from leadflow import config


def get_runtime(request: Request):
    return request.app.state.runtime


def require_admin(x_admin_token: str = Header(default=None)):
    """Gate administrative routes behind X-Admin-Token when ADMIN_API_TOKEN is set."""
    expected = config.ADMIN_API_TOKEN
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Admin token required")


def require_cron_secret(authorization: str = Header(default=None)):
    """Gate cron routes behind `Authorization: Bearer <CRON_SECRET>` when one is set."""
    expected = config.CRON_SECRET
    if not expected:
        return
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=401, detail="Unauthorized")
