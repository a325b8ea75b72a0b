from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging
import uuid

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import AuthUser, AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# Guests may create and read plans, so a missing token is not an error here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	username: str


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: Optional[str] = None


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	return password.encode("utf-8")[:72].decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	user_row = db.get(AuthUser, username)
	if user_row and verify_password(password, user_row.password_hash):
		return User(username=username)
	return None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	to_encode.update({"exp": datetime.now(timezone.utc) + delta})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _resolve_user(token: Optional[str], db: Session) -> Optional[User]:
	if not token:
		return None
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username: str | None = payload.get("sub")
	jti: str | None = payload.get("jti")
	if username is None or jti is None:
		raise credentials_exception
	# The session row must still exist so logins can be revoked server-side
	row = db.get(AuthSession, jti)
	if not row or row.username != username:
		raise credentials_exception
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return User(username=username)


def get_optional_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[User]:
	return _resolve_user(token, db)


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	user = _resolve_user(token, db)
	if user is None:
		raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
	return user


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, username=user.username))
	db.commit()
	logger.info("User %s logged in", user.username)
	return Token(access_token=create_access_token({"sub": user.username, "jti": session_id}))


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if len(password) < 8:
		raise HTTPException(status_code=400, detail="password must be at least 8 characters")
	if db.get(AuthUser, username) is not None:
		raise HTTPException(status_code=409, detail="username already exists")
	db.add(AuthUser(username=username, password_hash=hash_password(password), email=(req.email or "").strip() or None))
	db.commit()
	return {"ok": True}
