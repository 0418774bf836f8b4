from fastapi import Header, HTTPException, Request, status

from app.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_account_id(x_account_id: str = Header(default="")) -> str:
    """Account id asserted by the upstream auth gateway."""
    account_id = x_account_id.strip()
    if not account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Account-Id header",
        )
    return account_id
