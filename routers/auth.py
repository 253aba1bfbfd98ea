from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from fastapi.security import OAuth2PasswordRequestForm
from db.database import get_db
from services.auth_service import (
    EmailAlreadyRegistered,
    authenticate_user,
    create_access_token,
    create_user,
    get_current_active_user,
)
from db.models import User
from logger_manager import log_info, log_error, log_warning
from interfaces.authModels import UserCreate, UserResponse, Token

router = APIRouter()


@router.post("/register", response_model=Token)
def register(user: UserCreate, db: Session = Depends(get_db)):
    log_info("Register endpoint called")
    try:
        db_user = create_user(db, user.name, user.email, user.password)
        access_token = create_access_token(data={"sub": db_user.email})
        log_info("User registered successfully")
        return {"access_token": access_token, "token_type": "bearer"}
    except EmailAlreadyRegistered:
        log_warning(f"Email already registered: {user.email}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Email is already registered")
    except Exception as e:
        log_error(f"Error in register endpoint: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")

@router.post("/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    log_info("Login endpoint called")
    try:
        user = authenticate_user(db, form_data.username, form_data.password)
    except Exception as e:
        log_error(f"Error in login endpoint: {str(e)}", e)
        raise HTTPException(status_code=500, detail="Internal Server Error")
    if not user:
        log_warning("Incorrect username or password")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(data={"sub": user.email})
    log_info("User logged in successfully")
    return {"access_token": access_token, "token_type": "bearer"}

@router.get("/user", response_model=UserResponse)
def read_users_me(current_user: User = Depends(get_current_active_user)):
    log_info("Read current user endpoint called")
    return current_user
