from datetime import datetime, timedelta, timezone
import logging
import re
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..settings import settings
from ..db import get_db
from ..models import AuthUser, UserStat

router = APIRouter(tags=["auth"])

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login", auto_error=False)

# bcrypt only looks at the first 72 bytes
MAX_CREDENTIAL_LENGTH = 72
_ALNUM = re.compile(r"^[a-zA-Z0-9]+$")


class Credentials(BaseModel):
	username: str
	password: str


class User(BaseModel):
	id: int
	username: str


def is_valid_credential(value: str) -> bool:
	"""At least 8 ASCII letters/digits, mixing both."""
	if len(value) < 8 or len(value) > MAX_CREDENTIAL_LENGTH:
		return False
	return bool(_ALNUM.match(value)) and bool(re.search(r"[a-zA-Z]", value)) and bool(re.search(r"[0-9]", value))


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	expire = datetime.now(timezone.utc) + delta
	return jwt.encode({"sub": str(user_id), "exp": expire}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_user_id(token: str) -> int:
	payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	subject = payload.get("sub")
	if subject is None:
		raise JWTError("missing subject")
	try:
		return int(subject)
	except ValueError as err:
		raise JWTError("invalid user ID in token") from err


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	if not token:
		raise HTTPException(status_code=401, detail="Authorization header is required")
	try:
		user_id = _decode_user_id(token)
	except ExpiredSignatureError:
		raise HTTPException(status_code=401, detail="Token has expired")
	except JWTError:
		raise HTTPException(status_code=401, detail="Invalid token")
	row = db.get(AuthUser, user_id)
	if row is None:
		raise HTTPException(status_code=401, detail="User not found for token")
	return User(id=row.id, username=row.username)


def get_optional_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[User]:
	"""Like get_current_user, but anonymous callers (or bad tokens) get None."""
	if not token:
		return None
	try:
		return get_current_user(token, db)
	except HTTPException:
		return None


@router.post("/register", status_code=201)
def register(req: Credentials, db: Session = Depends(get_db)):
	if not is_valid_credential(req.username) or not is_valid_credential(req.password):
		raise HTTPException(
			status_code=400,
			detail="Username and password must be at least 8 characters long and contain both letters and numbers.",
		)
	row = AuthUser(username=req.username, password_hash=pwd_context.hash(req.password))
	db.add(row)
	try:
		db.flush()
	except IntegrityError:
		db.rollback()
		raise HTTPException(status_code=409, detail="Username already exists")
	db.add(UserStat(user_id=row.id, total_questions=0, total_correct=0, wrong_answers="[]", regional_stats="{}"))
	db.commit()
	return {"message": "User registered successfully"}


@router.post("/login")
def login(req: Credentials, db: Session = Depends(get_db)):
	row = db.query(AuthUser).filter(AuthUser.username == req.username).first()
	if row is None or not pwd_context.verify(req.password, row.password_hash):
		raise HTTPException(status_code=401, detail="Invalid credentials")
	return {"token": create_access_token(row.id)}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
	return {"id": user.id, "username": user.username}
