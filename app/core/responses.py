from typing import Any, Optional


# 성공 응답 공통 포맷: {"success": true, "data": ..., "message": ...}
def success(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
