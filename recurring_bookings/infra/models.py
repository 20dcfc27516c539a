"""Central registry for SQLAlchemy models.

Importing this module loads every ORM class so ``Base.metadata`` is complete for ``create_all``
and Alembic autogenerate, even when a caller imports a single model module.
"""

from recurring_bookings.domain.ops import db_models as ops_db_models  # noqa: F401
from recurring_bookings.domain.recurring_series import db_models as recurring_db_models  # noqa: F401
