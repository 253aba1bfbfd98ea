from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

import env
from db.database import get_db
from db.models import User
from interfaces.authModels import TokenData
from logger_manager import log_error, log_info

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Optional scheme so the token can also come from the query string
oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


class EmailAlreadyRegistered(Exception):
    pass


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def get_user(db: Session, email: str):
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()

def authenticate_user(db: Session, username: str, password: str):
    user = get_user(db, username)
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user

def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=env.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, env.SECRET_KEY, algorithm=env.ALGORITHM)

def get_token_from_request(request: Request, oauth_token: str = None):
    """Bearer header first, then the `token` query parameter."""
    if oauth_token:
        return oauth_token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]

    token_param = request.query_params.get("token")
    if token_param:
        log_info("Using token from query parameter")
        return token_param

    return None

def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    oauth_token: str = Depends(oauth2_scheme_optional)
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = get_token_from_request(request, oauth_token)
    if not token:
        log_error("No authentication token found")
        raise credentials_exception

    try:
        payload = jwt.decode(token, env.SECRET_KEY, algorithms=[env.ALGORITHM])
        email: str = payload.get("sub")
        if email is None:
            log_error("Token missing 'sub' claim")
            raise credentials_exception
        token_data = TokenData(email=email)
    except JWTError as e:
        log_error(f"JWT verification failed: {str(e)}")
        raise credentials_exception

    user = get_user(db, email=token_data.email)
    if user is None:
        log_error(f"User not found: {token_data.email}")
        raise credentials_exception
    return user

def get_current_active_user(current_user: User = Depends(get_current_user)):
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user

def create_user(db: Session, name: str, email: str, password: str):
    log_info(f"Creating user: {name}")
    if get_user(db, email) is not None:
        raise EmailAlreadyRegistered(email)
    db_user = User(name=name, email=email.lower(), hashed_password=get_password_hash(password))
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user
