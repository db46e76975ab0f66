# storefront/services/user.py

from typing import Optional

from sqlalchemy.future import select
from fastapi import Request

from storefront.models.user import User
from storefront.schemas.user import UserCreate
from storefront.utils.security import hash_password


async def read_user_by_login_service(login: str, request: Request) -> Optional[User]:
    """
    Пользователь по логину или None.
    """
    db = request.state.db
    result = await db.execute(select(User).where(User.login == login))
    return result.scalar_one_or_none()


async def create_user_service(user: UserCreate, request: Request) -> User:
    """
    Регистрация покупателя. Пароль хэшируется, права администратора не выдаются.
    IntegrityError при занятом логине пробрасывается.
    """
    db = request.state.db
    log = request.app.state.log

    db_user = User(
        name=user.name,
        login=user.login,
        password=hash_password(user.password),
        email=user.email,
        is_admin=False,
    )
    db.add(db_user)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_user)

    await log.log_info("auth", "Пользователь зарегистрирован", {"id": db_user.id, "login": db_user.login})
    return db_user
