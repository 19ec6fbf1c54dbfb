from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from storefront.db.session import SessionLocal
from storefront.security.utils import decode_token
from storefront.db.models import User, UserRole

security = HTTPBearer(auto_error=False)

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)) -> User:
    if not creds: raise HTTPException(status_code=401, detail='Not authenticated')
    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail='Invalid token')
    if payload.get('type') != 'access':
        raise HTTPException(status_code=401, detail='Invalid access token')
    user = db.query(User).filter(User.email == payload.get('sub')).first()
    if not user or not user.is_active: raise HTTPException(status_code=401, detail='User not found')
    return user

def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail='Admin only')
    return user
