"""
Модели ответов Bilibili API.

Все ответы завёрнуты в конверт {code, message, ttl, data}; code == 0 означает успех.
"""
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ProtocolError

# Коды data.code при опросе QR
POLL_SUCCESS = 0
POLL_WAITING_SCAN = 86101
POLL_WAITING_CONFIRM = 86090
POLL_EXPIRED = 86038


class QRCodeData(BaseModel):
    url: str
    qrcode_key: str


class QRCodeGenerateResponse(BaseModel):
    code: int
    message: str = ""
    ttl: int = 1
    data: Optional[QRCodeData] = None


class QRCodePollData(BaseModel):
    url: Optional[str] = None
    refresh_token: Optional[str] = None
    timestamp: int = 0
    code: int
    message: str = ""

    @field_validator("url", "refresh_token")
    @classmethod
    def _empty_to_none(cls, value: Optional[str]) -> Optional[str]:
        # Сервер присылает "" вместо null пока логин не подтверждён
        return value or None


class QRCodePollResponse(BaseModel):
    code: int
    message: str = ""
    data: Optional[QRCodePollData] = None


class VipInfo(BaseModel):
    type: int = 0
    status: int = 0


class NavData(BaseModel):
    is_login: bool = Field(default=False, alias="isLogin")
    mid: int = 0
    uname: str = ""
    face: str = ""
    vip: Optional[VipInfo] = None


class NavResponse(BaseModel):
    code: int
    message: str = ""
    ttl: int = 1
    data: Optional[NavData] = None


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_response(model: Type[ModelT], payload: Any) -> ModelT:
    """
    Распарсить JSON-ответ в модель.

    Raises:
        ProtocolError: если форма ответа не совпадает с моделью
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Unexpected {model.__name__} shape: {e.error_count()} error(s)") from e
