import io
import time
from datetime import datetime, timezone
from typing import List, Optional

import openpyxl
from fastapi import Depends, FastAPI, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import ledger
from config import Settings, get_settings
from database import Base, engine, get_db
from errors import register_error_handlers
from logging_config import configure_logging, get_logger
from schemas import (
    AccountCreate,
    AccountOut,
    AccountRename,
    CategoryIn,
    CategoryOut,
    LoginIn,
    MessageOut,
    RegisterIn,
    TokenOut,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    UserOut,
)
from security import create_access_token, get_current_user_id

app_settings = get_settings()
configure_logging(app_settings.log_level, app_settings.json_logs)
logger = get_logger(__name__)

Base.metadata.create_all(bind=engine)

STARTED_AT = time.monotonic()

app = FastAPI(title="Finance Tracker API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)

register_error_handlers(app)

logger.info(
    "configuration_loaded",
    environment=app_settings.environment,
    source="secret store" if app_settings.uses_secret_store else "environment",
    database=engine.dialect.name,
    jwt_secret="configured" if app_settings.jwt_secret else "MISSING",
)


@app.get("/")
def home():
    return {"message": "Finance Tracker API running"}


@app.get("/health")
def health(db: Session = Depends(get_db)):
    now = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_failed", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "timestamp": now, "database": "disconnected"},
        )
    return {
        "status": "healthy",
        "timestamp": now,
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "database": "connected",
    }


# ===== AUTH =====
@app.post("/api/auth/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    return crud.register_user(db, payload.email, payload.password, payload.name)


@app.post("/api/auth/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = crud.authenticate(db, payload.email, payload.password)
    return {"token": create_access_token(user.id, settings), "token_type": "bearer"}


# ===== ACCOUNT =====
@app.get("/api/account", response_model=AccountOut)
def get_account(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.get_account(db, user_id)


@app.post("/api/account", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
def create_account(payload: AccountCreate, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.create_account(db, user_id, payload.name, payload.balance)


@app.put("/api/account", response_model=MessageOut)
def rename_account(payload: AccountRename, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    crud.rename_account(db, user_id, payload.name)
    return {"message": "Account updated successfully"}


# ===== CATEGORIES =====
@app.get("/api/categories", response_model=List[CategoryOut])
def get_categories(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.list_categories(db, user_id)


@app.post("/api/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryIn, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return crud.create_category(db, user_id, payload.name, payload.type)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return crud.update_category(db, user_id, category_id, payload.name, payload.type)


@app.delete("/api/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    crud.delete_category(db, user_id, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ===== TRANSACTIONS =====
@app.get("/api/transactions", response_model=TransactionPage)
def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return ledger.list_transactions(db, user_id, page=page, limit=limit)


@app.post("/api/transactions", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def create_transaction(payload: TransactionIn, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return ledger.create_transaction(db, user_id, payload)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return ledger.update_transaction(db, user_id, transaction_id, payload)


@app.delete("/api/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    ledger.delete_transaction(db, user_id, transaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/transactions/export")
def export_transactions(
    year: int = Query(...),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    transactions = ledger.transactions_for_export(db, user_id, year, month)

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Transactions"

    sheet.append(["ID", "Date", "Type", "Amount", "Category", "Description"])

    for txn in transactions:
        sheet.append([
            txn.id,
            txn.date,
            txn.type.value,
            float(ledger.effect(txn.type, txn.amount)),
            txn.category.name,
            txn.description,
        ])

    stream = io.BytesIO()
    workbook.save(stream)
    stream.seek(0)

    filename = f"transactions_{year}"
    if month:
        filename += f"_{month}"

    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename={filename}.xlsx"
        },
    )
