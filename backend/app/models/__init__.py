"""SQLAlchemy models package.

All ORM classes are imported here so `Base.metadata` is complete regardless of
import order (Alembic autogenerate, `create_all` in tests).
"""

from app.models.identity_usage import IdentityUsage  # noqa: F401
from app.models.key_usage import KeyUsage  # noqa: F401
from app.models.rotation_state import CURSOR_ROW_ID, RotationState  # noqa: F401
