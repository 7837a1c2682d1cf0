"""Campus Library - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- Library management logic (library.py)
- Server actions (actions.py)
- CLI interface (cli.py)
- Data models (models.py)
- Database layer (database.py)
- Upload widget and borrow client (upload.py, borrow.py)
"""

__version__ = "1.0.0"
