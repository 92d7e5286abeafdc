from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wms.auth import (
    get_allowed_modules,
    get_current_user,
    hash_password,
    replace_user_module_access,
    seed_modules,
    token_for,
    verify_password,
)
from wms.db import get_db
from wms.models import Company, User
from wms.module_keys import MODULE_KEYS

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginPayload(BaseModel):
    email: str
    password: str


class BootstrapAdminPayload(BaseModel):
    company_code: str = Field(min_length=1, max_length=20)
    company_name: str
    email: str
    password: str = Field(min_length=10)
    full_name: str | None = None


def _serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "company_id": user.company_id,
        "email": user.email,
        "full_name": user.full_name,
        "is_admin": user.is_admin,
        "is_active": user.is_active,
        "role": user.role,
    }


@router.post("/bootstrap/admin", status_code=status.HTTP_201_CREATED)
def bootstrap_admin(payload: BootstrapAdminPayload, db: Session = Depends(get_db)):
    try:
        if db.bind and db.bind.dialect.name == "postgresql":
            db.execute(text("LOCK TABLE users IN EXCLUSIVE MODE"))

        if int(db.query(func.count(User.id)).scalar() or 0) > 0:
            raise HTTPException(status_code=409, detail="Bootstrap already completed")

        seed_modules(db)
        company = Company(code=payload.company_code, name=payload.company_name)
        db.add(company)
        db.flush()
        user = User(
            company_id=company.id,
            email=payload.email,
            full_name=payload.full_name,
            password_hash=hash_password(payload.password),
            role="admin",
            is_admin=True,
            is_active=True,
        )
        db.add(user)
        db.flush()
        replace_user_module_access(db, user.id, MODULE_KEYS)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Bootstrap already completed")

    db.refresh(user)
    return {"user": _serialize_user(user), "access_token": token_for(user), "token_type": "bearer"}


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not user.is_active or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"access_token": token_for(user), "token_type": "bearer", "user": _serialize_user(user)}


@router.get("/me")
def me(current_user: User = Depends(get_current_user), allowed_modules: list[str] = Depends(get_allowed_modules)):
    return {"user": _serialize_user(current_user), "allowed_modules": allowed_modules}
