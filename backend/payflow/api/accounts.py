"""Custodial account routes.

GET  /api/accounts[/]      : List custodial accounts.
GET  /api/accounts/{name}  : Fetch one account by name.
POST /api/accounts[/]      : Create an account ({"name": ...}, JSON or form).
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, ValidationError

from payflow.api.body import decoded_body
from payflow.services.accounts import AccountService

router = APIRouter()


class CreateAccountRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


@router.get("")
@router.get("/", include_in_schema=False)
async def list_accounts(service: AccountService = Depends(get_account_service)):
    accounts = await service.list_accounts()
    return {"success": True, "data": [a.to_dict() for a in accounts]}


@router.get("/{name}")
async def get_account(name: str, service: AccountService = Depends(get_account_service)):
    account = await service.get_account(name)
    return {"success": True, "data": account.to_dict()}


@router.post("", status_code=201)
@router.post("/", status_code=201, include_in_schema=False)
async def create_account(
    body: Any = Depends(decoded_body),
    service: AccountService = Depends(get_account_service),
):
    try:
        payload = CreateAccountRequest.model_validate(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e
    account = await service.create_custodial_account(payload.name)
    return {"success": True, "data": account.to_dict()}
