# storefront/routes/auth.py

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.exc import IntegrityError

from storefront.config import settings
from storefront.errors import UnauthorizedError
from storefront.schemas.user import UserCreate, UserResponse
from storefront.services.user import create_user_service, read_user_by_login_service
from storefront.utils.security import create_access_token, decode_access_token, verify_password

router = APIRouter()

# ────────────── JWT ──────────────
# auto_error=False: отсутствие токена превращается в UnauthorizedError ниже
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


async def get_current_user(request: Request, token: str | None = Depends(oauth2_scheme)):
    """
    Проверяет JWT токен и возвращает пользователя.

    **Статусы:**
    - 401 unauthorized – токен отсутствует, истёк, неверный или пользователь удалён

    Возвращает: ORM объект User
    """
    log = request.app.state.log

    if not token:
        raise UnauthorizedError()

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        await log.log_warning("auth", "Токен истёк")
        raise UnauthorizedError("Токен истёк")
    except InvalidTokenError:
        await log.log_warning("auth", "Неверный токен")
        raise UnauthorizedError("Неверный токен")

    login = payload.get("sub")
    if login is None:
        await log.log_error("auth", "Токен не содержит login")
        raise UnauthorizedError("Неверный токен")

    user = await read_user_by_login_service(login, request)
    if user is None:
        await log.log_warning("auth", "Пользователь из токена не найден", {"login": login})
        raise UnauthorizedError("Пользователь не найден")

    return user


# ────────────── TOKEN ──────────────
@router.post(
    "/token",
    summary="Получение JWT токена (авторизация пользователя)",
    responses={
        200: {
            "description": "✅ Токен успешно получен. Возвращает access_token, token_type и данные пользователя.",
            "content": {
                "application/json": {
                    "example": {
                        "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                        "token_type": "bearer",
                        "user": {
                            "id": 1,
                            "name": "Анна",
                            "login": "anna",
                            "is_subscribed": True
                        }
                    }
                }
            }
        },
        401: {"description": "❌ Неверный логин или пароль"},
        422: {"description": "⚠️ Ошибка валидации входных данных (например, пустой username или password)"},
    }
)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends()
):
    """
    Авторизация покупателя и получение JWT токена.

    **Входные данные (form-data):**
    - `username`: str, логин
    - `password`: str, пароль

    **Коды ответа:**
    - `200`: токен выдан
    - `401`: неверный логин или пароль
    """
    log = request.app.state.log

    user = await read_user_by_login_service(form_data.username, request)
    if not user or not verify_password(form_data.password, user.password or ""):
        await log.log_warning("auth", "Неудачная попытка входа", {"username": form_data.username})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверный логин или пароль",
            headers={"WWW-Authenticate": "Bearer"}
        )

    access_token = create_access_token(
        data={"sub": user.login},
        expires_delta=timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES)
    )
    await log.log_info("auth", "Пользователь авторизован", {"login": user.login})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": {
            "id": user.id,
            "name": user.name,
            "login": user.login,
            "is_subscribed": user.is_subscribed
        }
    }


# ────────────── Регистрация ──────────────
@router.post(
    "/register",
    response_model=UserResponse,
    status_code=201,
    summary="Регистрация нового пользователя",
    responses={
        201: {"description": "Пользователь успешно зарегистрирован"},
        400: {"description": "Логин уже занят"},
        422: {"description": "Ошибка валидации"},
    }
)
async def register_user(user: UserCreate, request: Request):
    """
    Регистрация покупателя.

    - Все новые пользователи обычные (`is_admin=False`), без подписки.
    - Пароль хэшируется перед сохранением.
    """
    try:
        return await create_user_service(user, request)
    except IntegrityError:
        await request.app.state.log.log_warning("auth", "Логин занят", {"login": user.login})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Пользователь с логином '{user.login}' уже существует"
        )
