"""Connectivity self-test result model."""

from typing import Optional

from pydantic import BaseModel, Field


class ConnectionTestResult(BaseModel):
    """Outcome of a connectivity self-test, with a human-readable diagnosis."""

    success: bool = Field(..., description="Whether the test query succeeded")
    message: str = Field(..., description="Human-readable result or diagnosis")
    version: Optional[str] = Field(None, description="PostgreSQL server version")
    code: Optional[str] = Field(
        None, description="Driver error code when the test failed"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "success": True,
                    "message": "Connected successfully to PostgreSQL 16.2 at localhost:5432/mydb",
                    "version": "16.2",
                    "code": None,
                },
                {
                    "success": False,
                    "message": "Authentication failed. Invalid username or password.",
                    "version": None,
                    "code": "28P01",
                },
            ]
        }
    }
