from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


def envelope(success: bool, status_code: int = 200, headers: Optional[Dict[str, str]] = None, **fields: Any) -> JSONResponse:
    """Every JSON reply is ``{"success": bool, ...fields}``. ``None`` fields are omitted."""
    body: Dict[str, Any] = {"success": success}
    body.update({k: v for k, v in fields.items() if v is not None})
    return JSONResponse(body, status_code=status_code, headers=headers)


def ok(**fields: Any) -> JSONResponse:
    return envelope(True, **fields)


def fail(status_code: int, msg: str, details: Optional[str] = None, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return envelope(False, status_code=status_code, headers=headers, msg=msg, details=details)
