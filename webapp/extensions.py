from flask_babel import Babel

from core.db import db

babel = Babel()

__all__ = ["babel", "db"]
