from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class UpsertStoreRequest(BaseModel):
    shopDomain: str = Field(min_length=1)
    accessToken: str = Field(min_length=1)


class StoreResponse(BaseModel):
    storeId: str
    shopDomain: str
    createdAt: datetime
    updatedAt: datetime


class InstallDetails(BaseModel):
    theme: str | None = None
    snippetInstalled: bool
    templateUpdated: bool
    templateKey: str | None = None
    stage: str


class InstallBundleDisplayResponse(BaseModel):
    success: Literal[True] = True
    message: str
    details: InstallDetails


class UninstallBundleDisplayResponse(BaseModel):
    success: Literal[True] = True
    message: str


class CheckInstallationResponse(BaseModel):
    installed: bool
    theme: str | None = None
    message: str


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
