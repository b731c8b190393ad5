"""Pydantic model for a configured Alza account."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Account(BaseModel):
    """Credentials for one Alza account.

    ``label`` is what callers use to address the account; ``email`` keys
    the session store.
    """

    model_config = ConfigDict(frozen=True)

    email: str
    password: str = Field(repr=False)
    label: str
