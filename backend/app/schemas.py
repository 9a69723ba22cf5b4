"""Pydantic schemas for request/response validation"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# Contact form schemas
class ContactForm(BaseModel):
    """Schema for a contact form submission"""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str
    message: str
    honeypot: str | None = None
    gdpr_consent: bool = Field(alias="gdprConsent")

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        if len(value) > 50:
            raise ValueError("Name must be less than 50 characters")
        if not NAME_PATTERN.match(value):
            raise ValueError(
                "Name can only contain letters, spaces, hyphens, and apostrophes"
            )
        return value

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip().lower()
        if len(value) < 5:
            raise ValueError("Email must be at least 5 characters")
        if len(value) > 254:
            raise ValueError("Email must be less than 254 characters")
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Please enter a valid email address")
        return value

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 10:
            raise ValueError("Message must be at least 10 characters")
        if len(value) > 1000:
            raise ValueError("Message must be less than 1000 characters")
        return value

    @field_validator("gdpr_consent")
    @classmethod
    def validate_consent(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("You must accept the privacy policy to submit this form")
        return value


# CSRF schemas
class CSRFTokenResponse(BaseModel):
    """Schema for an issued CSRF token"""

    token: str
    sessionId: str
    expiresIn: int
    algorithm: str
    version: str
    issued: str


class CSRFValidateRequest(BaseModel):
    """Schema for the token validation (debug) endpoint"""

    token: str | None = None
    sessionId: str | None = None


class CSRFValidateResponse(BaseModel):
    """Schema for a token validation result"""

    valid: bool
    error: str | None = None
    newToken: str | None = None
    timestamp: str
