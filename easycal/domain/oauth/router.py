"""OAuth router - marketplace install redirect and callback"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ...config import APP_BASE_URL, APP_NAME
from ...database import get_db
from ...kv import KVStore, get_kv
from .service import InstallError, OAuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["OAuth"])


def get_oauth_service(db: Session = Depends(get_db), kv: KVStore = Depends(get_kv)) -> OAuthService:
    """Dependency injection for OAuthService"""
    return OAuthService(db, kv)


def error_page(title: str, message: str, status_code: int = 400) -> HTMLResponse:
    content = f"""<!DOCTYPE html>
<html><body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
  <p><small>Please ensure you have authorized the application and try again.</small></p>
  <p><a href="{html.escape(APP_BASE_URL)}/">Return to {APP_NAME}</a></p>
</body></html>"""
    return HTMLResponse(content=content, status_code=status_code)


def success_page(redirect_path: str, message: str) -> HTMLResponse:
    target = html.escape(f"{APP_BASE_URL.rstrip('/')}{redirect_path}")
    content = f"""<!DOCTYPE html>
<html>
<head>
  <title>Installation Complete</title>
  <meta http-equiv="refresh" content="0; url={target}">
</head>
<body>
  <h1>&#10003; {APP_NAME} Installed Successfully!</h1>
  <p>{html.escape(message)}</p>
  <a href="{target}">Go to {APP_NAME}</a>
</body>
</html>"""
    return HTMLResponse(content=content, status_code=200)


@router.get("/install")
async def install(
    type: str = Query("location"),
    service: OAuthService = Depends(get_oauth_service),
):
    """Redirect to the GHL marketplace location chooser"""
    return RedirectResponse(url=service.build_install_url(type), status_code=302)


@router.get("/callback")
async def callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    service: OAuthService = Depends(get_oauth_service),
):
    """Exchange the authorization code and record the installation"""
    if error:
        logger.warning(f"⚠️ OAuth authorization denied: {error}")
        return error_page("Authorization Failed", error_description or error)

    if not code:
        return error_page("Authorization Error", "No authorization code received.")

    try:
        result = await service.complete_install(code, state)
    except InstallError as e:
        return error_page(e.title, e.message, e.status_code)
    except Exception as e:
        logger.exception(f"❌ OAuth callback error: {e}")
        return error_page("Installation Error", f"Error: {e}", 500)

    return success_page(result.redirect_url, result.message)
