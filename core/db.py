from flask_sqlalchemy import SQLAlchemy

# Shared database instance backing the user directory and challenge ledger

db = SQLAlchemy(session_options={"expire_on_commit": False})

__all__ = ["db"]
