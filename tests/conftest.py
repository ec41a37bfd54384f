import base64
import os

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test-unused.db")

import pytest
import pytest_asyncio

from hairstyle_api.config import Settings
from hairstyle_api.database import Database
from hairstyle_api.providers import ProviderGateway
from hairstyle_api.providers.base import BaseImageEditProvider, ProviderName

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
EDITED_IMAGE = "data:image/png;base64," + base64.b64encode(b"edited").decode()


class FakeProvider(BaseImageEditProvider):
    """Provider double: returns `outcome`, or raises it when it is an exception"""

    name = ProviderName.WAVESPEED

    def __init__(self, outcome=EDITED_IMAGE, configured=True):
        self.outcome = outcome
        self.calls = []
        super().__init__({"api_key": "test-key" if configured else None})

    def _initialize_client(self):
        pass

    async def edit(self, image, prompt):
        self.calls.append((image, prompt))
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite:///./test-unused.db",
        ENVIRONMENT="test",
        GENERATION_COST=1,
        SIGNUP_BONUS_CREDITS=3,
        MAX_PROMPT_LENGTH=500,
        MAX_IMAGE_SIZE_MB=10,
        RECONCILIATION_GRACE_SECONDS=300,
    )


@pytest.fixture
def png_data_url():
    return "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


@pytest.fixture
def make_gateway():
    def _make(outcome=EDITED_IMAGE, configured=True):
        provider = FakeProvider(outcome=outcome, configured=configured)
        return ProviderGateway([provider]), provider
    return _make


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'hairstyle_test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session
