"""
risk.py — Renewal risk API

Cached reads of account risk, the at-risk dashboard list and neglected
accounts, plus the manual trigger for the batch refresh.

Called by: main.py (router mount)
Depends on: database, schemas/risk, services/risk_refresh_service
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.risk import AccountRiskOut, AtRiskAccountsOut, NeglectedAccountsOut, RefreshReportOut
from ..services import risk_refresh_service

router = APIRouter()


@router.get("/api/accounts/{account_id}/risk", response_model=AccountRiskOut)
async def account_risk(account_id: str, db: Session = Depends(get_db)):
    payload = risk_refresh_service.get_account_risk(db, account_id)
    if payload is None:
        raise HTTPException(404, "Account not found")
    return payload


@router.get("/api/at-risk-accounts", response_model=AtRiskAccountsOut)
async def at_risk_accounts(db: Session = Depends(get_db)):
    """Accounts with a won contract expiring inside the window and no renewal booked."""
    return risk_refresh_service.get_at_risk_accounts(db)


@router.get("/api/neglected-accounts", response_model=NeglectedAccountsOut)
async def neglected_accounts(db: Session = Depends(get_db)):
    return risk_refresh_service.get_neglected_accounts(db)


@router.post("/api/admin/refresh-notifications", response_model=RefreshReportOut)
async def refresh_notifications(db: Session = Depends(get_db)):
    """Run the batch refresh now instead of waiting for the scheduler."""
    return risk_refresh_service.run_risk_refresh(db)
