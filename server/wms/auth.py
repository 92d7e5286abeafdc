from datetime import datetime, timedelta, timezone
from typing import Iterable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from wms.config import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY
from wms.db import get_db
from wms.models import Company, Module, User, UserModuleAccess
from wms.module_keys import MODULE_DEFINITIONS, MODULE_KEY_SET

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    claims = dict(data)
    claims["exp"] = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "company_id": user.company_id, "is_admin": user.is_admin})


def modules_for(db: Session, user: User) -> list[str]:
    if user.is_admin:
        return [key.value for key, _ in MODULE_DEFINITIONS]
    rows = (
        db.query(Module.key)
        .join(UserModuleAccess, UserModuleAccess.module_id == Module.id)
        .filter(UserModuleAccess.user_id == user.id)
        .order_by(Module.id.asc())
        .all()
    )
    return [key for (key,) in rows]


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """Resolve the acting user, and with it the tenant every engine call is scoped to.

    The token's ``company_id`` claim must still match the user's company and that company
    must be active; a user moved to another tenant has to log in again.
    """
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise unauthorized
    user_id = claims.get("sub")
    if user_id is None:
        raise unauthorized

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user or not user.is_active or claims.get("company_id") != user.company_id:
        raise unauthorized
    company = db.query(Company).filter(Company.id == user.company_id).first()
    if not company or not company.is_active:
        raise unauthorized
    return user


def get_allowed_modules(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[str]:
    return modules_for(db, current_user)


def require_module(module_key: str):
    def dependency(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if current_user.is_admin or module_key in modules_for(db, current_user):
            return current_user
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not authorized for module '{module_key}'",
        )

    return dependency


def seed_modules(db: Session) -> None:
    existing = {key for (key,) in db.query(Module.key).all()}
    db.add_all(Module(key=key.value, name=name) for key, name in MODULE_DEFINITIONS if key.value not in existing)
    db.flush()


def replace_user_module_access(db: Session, user_id: int, module_keys: Iterable[str]) -> list[str]:
    module_keys = list(dict.fromkeys(module_keys))
    unknown = [key for key in module_keys if key not in MODULE_KEY_SET]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown module keys: {', '.join(unknown)}")
    modules = db.query(Module).filter(Module.key.in_(module_keys)).all() if module_keys else []

    db.query(UserModuleAccess).filter(UserModuleAccess.user_id == user_id).delete()
    db.add_all(UserModuleAccess(user_id=user_id, module_id=module.id) for module in modules)
    return module_keys
