from app.core.config import settings
from app.core.database import get_db, Base, get_db_session
from app.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    create_refresh_token,
    decode_token,
)
