"""
거래 계좌 API 요청 모델
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field

HolderType = Literal["USER", "BUSINESS"]


class TradingAccountCreate(BaseModel):
    account_number: str = Field(..., min_length=1, description="계좌 번호")
    account_name: str = Field(..., min_length=1, max_length=100, description="계좌명")
    holder_type: HolderType = Field(..., description="명의 유형 (USER, BUSINESS)")
    holder_id: str = Field(..., min_length=1, description="명의자 ID")
    group: str = Field(..., min_length=1, description="거래 그룹")
    leverage: int = Field(..., ge=1, description="레버리지")
    login_id: str = Field(..., min_length=1, description="거래 플랫폼 로그인 ID")
    password: str = Field(..., min_length=1, description="거래 플랫폼 비밀번호")

    class Config:
        extra = "forbid"


class TradingAccountUpdate(BaseModel):
    """부분 수정 요청 (지정한 필드만 변경)"""
    account_name: Optional[str] = Field(default=None, min_length=1, max_length=100, description="계좌명")
    holder_type: Optional[HolderType] = Field(default=None, description="명의 유형")
    holder_id: Optional[str] = Field(default=None, min_length=1, description="명의자 ID")
    group: Optional[str] = Field(default=None, min_length=1, description="거래 그룹")
    leverage: Optional[int] = Field(default=None, ge=1, description="레버리지")
    password: Optional[str] = Field(default=None, min_length=1, description="거래 플랫폼 비밀번호")

    class Config:
        extra = "forbid"
