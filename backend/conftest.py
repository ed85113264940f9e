"""
Pytest configuration file for backend testing.
"""
import os
import sys
from pathlib import Path

# Tests never talk to a real database or start the background scheduler
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("POS_SCHEDULER_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Import all models to register them with SQLAlchemy
from core import menu_models  # noqa: E402,F401
from modules.pos_sync.models import pos_config_models, sync_models  # noqa: E402,F401
