from fastapi import APIRouter, Depends, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_optional_user
from app.core.auth_token import TOKEN_COOKIE_NAME, auth_cookie_options, issue_auth_token
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.models.users import User
from app.schemas.users import AuthOut, LoginIn, MeOut, ProfileUpdate, UserCreate, UserOut
from app.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


def set_auth_cookie(response: Response, user: User, settings: Settings) -> None:
    token = issue_auth_token(
        user.id, secret=settings.signing_secret, ttl=settings.auth_token_ttl
    )
    response.set_cookie(
        TOKEN_COOKIE_NAME,
        token,
        **auth_cookie_options(
            production=settings.is_production, ttl=settings.auth_token_ttl
        ),
    )


def _auth_response(
    user: User, settings: Settings, status_code: int = status.HTTP_200_OK
) -> JSONResponse:
    body = AuthOut(user=UserOut.model_validate(user))
    resp = JSONResponse(jsonable_encoder(body), status_code=status_code)
    resp.headers["Cache-Control"] = "no-store"
    set_auth_cookie(resp, user, settings)
    return resp


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
def register(
    payload: UserCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = auth_service.register_user(db, payload.name, payload.email, payload.password)
    return _auth_response(user, settings, status.HTTP_201_CREATED)


@router.post("/login", response_model=AuthOut)
def login(
    payload: LoginIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = auth_service.authenticate(db, payload.email, payload.password)
    return _auth_response(user, settings)


@router.post("/logout")
def logout(settings: Settings = Depends(get_settings)):
    resp = JSONResponse({"message": "ok"})
    resp.headers["Cache-Control"] = "no-store"
    options = auth_cookie_options(
        production=settings.is_production, ttl=settings.auth_token_ttl
    )
    resp.delete_cookie(
        key=TOKEN_COOKIE_NAME,
        path="/",
        secure=options["secure"],
        httponly=True,
        samesite=options["samesite"],
    )
    return resp


@router.get("/me", response_model=MeOut)
def me(
    user: User | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
):
    return MeOut(
        user=UserOut.model_validate(user) if user else None,
        google_enabled=settings.google_enabled,
    )


@router.patch("/me", response_model=AuthOut)
def update_me(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user = auth_service.update_profile(db, user, payload)
    return AuthOut(user=UserOut.model_validate(user))
