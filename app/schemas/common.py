"""Common response schemas"""

from pydantic import BaseModel, Field
from typing import Optional, Any


class ApiResponse(BaseModel):
    """Envelope shared by every REST response, successful or not"""
    success: bool = True
    status_code: int = Field(200, serialization_alias="statusCode")
    message: Optional[str] = None
    data: Optional[Any] = None

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "success": True,
                "statusCode": 200,
                "message": "Chat rooms retrieved successfully",
                "data": {}
            }
        }


def api_response(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> dict:
    """Render a success envelope as a JSON-ready dict"""
    return ApiResponse(
        success=status_code < 400,
        status_code=status_code,
        message=message,
        data=data,
    ).model_dump(mode="json", by_alias=True)
