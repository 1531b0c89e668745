"""Routes d'authentification."""
from __future__ import annotations

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from reception.api.deps import get_settings, get_user_store
from reception.core import models, security
from reception.core.config import Settings
from reception.core.users import UserStore

router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
    users: UserStore = Depends(get_user_store),
) -> models.User:
    try:
        payload = security.decode_token(token, settings.JWT_SECRET)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Jeton invalide") from exc
    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Charge utile du jeton invalide")
    user = users.get_user(username)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Utilisateur introuvable")
    return user


@router.post("/login", response_model=models.Token)
async def login(
    credentials: models.LoginRequest,
    settings: Settings = Depends(get_settings),
    users: UserStore = Depends(get_user_store),
) -> models.Token:
    user = users.authenticate(credentials.username, credentials.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Identifiants invalides")
    access_token = security.create_access_token(user.username, settings.JWT_SECRET, {"role": user.role})
    return models.Token(access_token=access_token)


@router.get("/me", response_model=models.User)
async def me(current_user: models.User = Depends(get_current_user)) -> models.User:
    return current_user
