"""
Request and response models for the HTTP surface.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator


class CommandRequest(BaseModel):
    command_text: StrictStr

    @field_validator('command_text')
    @classmethod
    def command_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('command_text is required and must be a string')
        return v


class ApprovalCreateRequest(BaseModel):
    command_text: StrictStr

    @field_validator('command_text')
    @classmethod
    def command_must_not_be_blank(cls, v):
        if not v.strip():
            raise ValueError('command_text cannot be empty')
        return v


class RuleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pattern: StrictStr
    action: StrictStr
    example_match: Optional[str] = Field(default=None, alias='exampleMatch')

    @field_validator('pattern')
    @classmethod
    def pattern_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('pattern is required and must be a string')
        return v

    @field_validator('action')
    @classmethod
    def action_must_be_valid(cls, v):
        if v not in ('AUTO_REJECT', 'AUTO_ACCEPT'):
            raise ValueError("action must be either 'AUTO_REJECT' or 'AUTO_ACCEPT'")
        return v


class UserCreateRequest(BaseModel):
    username: StrictStr
    email: StrictStr
    role: Optional[str] = None


class CreditsUpdateRequest(BaseModel):
    credits: StrictInt

    @field_validator('credits')
    @classmethod
    def credits_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('credits must be a non-negative number')
        return v


class MatchedRule(BaseModel):
    id: int
    pattern: str
    action: str


class CommandResponse(BaseModel):
    status: str
    command: str
    message: str
    matched_rule: Optional[MatchedRule] = None
    credits_deducted: Optional[int] = None
    new_balance: Optional[int] = None
    audit_trail_id: Optional[str] = None


class BalanceResponse(BaseModel):
    username: str
    credits: int


class LoginResponse(BaseModel):
    message: str
    userId: str
    username: str
    role: str
    credits: int


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
