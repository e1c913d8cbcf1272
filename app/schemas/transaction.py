"""
입출금 거래 내역 API 요청 모델
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field

TransactionType = Literal["DEPOSIT", "WITHDRAW"]


class TransactionCreate(BaseModel):
    transaction_type: TransactionType = Field(..., description="거래 유형 (DEPOSIT, WITHDRAW)")
    amount: float = Field(..., ge=0, description="금액")
    description: Optional[str] = Field(default=None, max_length=255, description="설명")
    account_id: str = Field(..., description="계좌 ID (24자리 16진수)")
    deal_id: Optional[str] = Field(default=None, description="거래 플랫폼 딜 ID")

    class Config:
        extra = "forbid"


class TransactionUpdate(BaseModel):
    """부분 수정 요청 (지정한 필드만 변경)"""
    transaction_type: Optional[TransactionType] = Field(default=None, description="거래 유형")
    amount: Optional[float] = Field(default=None, ge=0, description="금액")
    description: Optional[str] = Field(default=None, max_length=255, description="설명")
    deal_id: Optional[str] = Field(default=None, description="거래 플랫폼 딜 ID")

    class Config:
        extra = "forbid"
