from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["system"])


@router.get("/")
def welcome() -> dict[str, str]:
    return {"message": "Welcome to bitespeed"}


@router.get("/api/v1/healthCheck")
def health_check() -> dict[str, str]:
    return {"message": "Server is running"}


__all__ = ["router"]
