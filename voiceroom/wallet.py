import os
from secrets import compare_digest
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from .security import current_user, get_db
from .ledger import apply_delta, balances, summary as ledger_summary
from .schemas import DepositIn, WalletOut

router = APIRouter(prefix="/wallet", tags=["wallet"])

@router.get("/balance", response_model=WalletOut)
def balance(user = Depends(current_user), db: Session = Depends(get_db)):
    return balances(db, user.id)

@router.get("/summary")
def summary(user = Depends(current_user), db: Session = Depends(get_db)):
    return ledger_summary(db, user.id)

@router.post("/deposit", response_model=WalletOut)
def deposit(body: DepositIn, user = Depends(current_user), db: Session = Depends(get_db)):
    # Re-auth check against server-configured recharge password
    # Accept both uppercase and lowercase for convenience (.env vs platform env)
    expected = os.getenv("DEPOSIT_PASSWORD") or os.getenv("deposit_password")
    if not expected:
        # Do not allow recharges if password isn't configured server-side
        raise HTTPException(status_code=500, detail="Deposit password not configured")
    if not compare_digest(body.password, expected):
        raise HTTPException(status_code=401, detail="Invalid password")
    user_id = user.id
    apply_delta(db, user_id, "coins", body.amount, "recharge")
    return balances(db, user_id)
